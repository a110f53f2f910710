"""
Alert views.

Alerts are created by the payment and approval flows, never through the
API. Administrators list them and move them along
``active -> acknowledged -> resolved``.
"""

import logging

from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.audit import log_action
from baklava_wholesale.context import AuthContext
from baklava_wholesale.exceptions import ConflictError

from .models import Alert
from .serializers import AlertSerializer

logger = logging.getLogger(__name__)


class AlertViewSet(viewsets.ReadOnlyModelViewSet):
    """ViewSet for Alert management."""

    serializer_class = AlertSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ['alert_type', 'severity', 'status']
    queryset = Alert.objects.all()

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        self.ctx = AuthContext.from_request(request)
        self.ctx.require_admin()

    def _move(self, alert, target):
        if alert.status == Alert.Status.RESOLVED:
            raise ConflictError('Alert is already resolved.')
        if target == Alert.Status.ACKNOWLEDGED:
            alert.acknowledge()
        else:
            alert.resolve()
        log_action(
            self.ctx,
            'ALERT_UPDATE',
            'ALERT',
            alert.pk,
            metadata={'status': alert.status, 'alert_type': alert.alert_type},
        )
        logger.info("Alert %s marked %s by user %s", alert.pk, alert.status, self.ctx.user_id)
        return Response(AlertSerializer(alert).data)

    @action(detail=True, methods=['post'])
    def acknowledge(self, request, pk=None):
        """Acknowledge an alert."""
        alert = self.get_object()
        if alert.status == Alert.Status.ACKNOWLEDGED:
            return Response(AlertSerializer(alert).data)
        return self._move(alert, Alert.Status.ACKNOWLEDGED)

    @action(detail=True, methods=['post'])
    def resolve(self, request, pk=None):
        """Resolve an alert."""
        return self._move(self.get_object(), Alert.Status.RESOLVED)
