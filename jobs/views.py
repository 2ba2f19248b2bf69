import structlog
from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .pipeline import get_pipeline
from .serializers import SubmitRequestSerializer, SubmitResponseSerializer, first_error

logger = structlog.get_logger()

QUEUED_MESSAGE = "Your request has been queued. You will receive an email with the results shortly."


class SubmitJobView(views.APIView):
    """
    Accepts a channel (handle or search text) and an email address, stores a
    queued job and publishes its first event.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = SubmitRequestSerializer(data=request.data)
        if not ser.is_valid():
            message = first_error(ser.errors)
            logger.warning("job_submission_rejected", error=message)
            return Response({"error": message}, status=status.HTTP_400_BAD_REQUEST)

        try:
            record = get_pipeline().submit(ser.validated_data["channel"], ser.validated_data["email"])
        except Exception as exc:
            logger.error("job_submission_failed", error=str(exc), error_type=exc.__class__.__name__)
            return Response({"error": "Internal server error"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        out = SubmitResponseSerializer({"success": True, "message": QUEUED_MESSAGE, "job_id": record.job_id}).data
        return Response(out, status=status.HTTP_201_CREATED)


class JobDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, job_id):
        record = get_pipeline().jobs.get(str(job_id))
        if record is None:
            return Response({"detail": "Not found"}, status=status.HTTP_404_NOT_FOUND)
        return Response(record.to_dict())
