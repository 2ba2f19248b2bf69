"""Email bodies. Templates autoescape every interpolated value."""

from collections.abc import Sequence

from django.template.loader import render_to_string

from .records import ImprovedTitle

PRODUCT_NAME = "YouTube Title Doctor"


def results_subject(channel_name: str) -> str:
    return f"Improved Titles for channel {channel_name}"


def render_results_email(channel_name: str, improved_titles: Sequence[ImprovedTitle]) -> str:
    return render_to_string("jobs/results_email.html", {
        "product_name": PRODUCT_NAME,
        "channel_name": channel_name,
        "improved_titles": improved_titles,
    })


def failure_subject() -> str:
    return f"Request failed for {PRODUCT_NAME}"


def render_failure_email(error: str) -> str:
    return render_to_string("jobs/failure_email.html", {
        "product_name": PRODUCT_NAME,
        "error": error,
    })
