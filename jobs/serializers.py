import re

from rest_framework import serializers

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


class SubmitRequestSerializer(serializers.Serializer):
    channel = serializers.CharField(required=False, allow_blank=True)
    email = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        """Both fields are required; the email must look like an address."""
        if not attrs.get("channel") or not attrs.get("email"):
            raise serializers.ValidationError("Channel name and email are required")
        if not EMAIL_PATTERN.match(attrs["email"]):
            raise serializers.ValidationError("Invalid email")
        return attrs


class SubmitResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    message = serializers.CharField()
    job_id = serializers.CharField()


def first_error(errors) -> str:
    """Flatten DRF's error structure down to its first message."""
    if isinstance(errors, dict):
        for value in errors.values():
            return first_error(value)
    if isinstance(errors, list) and errors:
        return first_error(errors[0])
    return str(errors)
