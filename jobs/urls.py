from django.urls import path
from .views import SubmitJobView, JobDetailView

urlpatterns = [
    path("jobs/", SubmitJobView.as_view(), name="submit_job"),
    path("jobs/<uuid:job_id>/", JobDetailView.as_view(), name="job_detail"),
]
