from django.db import models


class StateEntry(models.Model):
    """One key-value entry of the pipeline state store."""

    namespace = models.CharField(max_length=64)
    key = models.CharField(max_length=128)
    value = models.JSONField(default=dict)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["namespace", "key"], name="unique_state_entry"),
        ]

    def __str__(self):
        return f"{self.namespace}:{self.key}"
