# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics exposed by the SMTP gateway."""

from prometheus_client import CollectorRegistry, Counter, generate_latest


class GatewayMetrics:
    """Wrapper around the Prometheus registry used by a gateway."""

    def __init__(self, registry: CollectorRegistry | None = None):
        """Create counters inside the provided registry."""
        self.registry = registry or CollectorRegistry()
        self.sent = Counter("smtpgw_sent_total", "Total sent emails", ["host"], registry=self.registry)
        self.errors = Counter("smtpgw_errors_total", "Total failed deliveries", ["host"], registry=self.registry)
        self.connections = Counter(
            "smtpgw_connections_total", "Total SMTP sessions opened", ["host"], registry=self.registry
        )

    def inc_sent(self, host: str | None = None):
        """Increase the ``sent`` counter for the given host."""
        self.sent.labels(host=host or "default").inc()

    def inc_error(self, host: str | None = None):
        """Increase the ``errors`` counter for the given host."""
        self.errors.labels(host=host or "default").inc()

    def inc_connection(self, host: str | None = None):
        self.connections.labels(host=host or "default").inc()

    def generate_latest(self) -> bytes:
        """Return the latest metrics snapshot in Prometheus text format."""
        return generate_latest(self.registry)
