"""
Monitoring serializers for the alert API.
"""

from rest_framework import serializers

from .models import Alert


class AlertSerializer(serializers.ModelSerializer):
    """Serializer for Alert."""

    severity_display = serializers.CharField(source='get_severity_display', read_only=True)

    class Meta:
        model = Alert
        fields = [
            'id',
            'alert_type',
            'severity',
            'severity_display',
            'title',
            'message',
            'source',
            'status',
            'metadata',
            'created_at',
            'acknowledged_at',
            'resolved_at',
        ]
        read_only_fields = fields
