"""
Prometheus Metrics Module

Provides instrumentation for the core operations:
- Survey submissions and skipped answers
- Store transactions (commits, conflicts)
- Group provisioning and joins
- Pairwise comparisons
- API requests

Usage:
    from server.metrics import metrics
    metrics.survey_submissions.labels(outcome="ok").inc()
    metrics.record_group_operation("join", "already_member")
"""

from prometheus_client import Counter, Histogram, generate_latest, REGISTRY


class CommonGroundMetrics:
    """Centralized metrics for scoring, groups and the API"""

    def __init__(self):
        # Scoring metrics
        self.survey_submissions = Counter(
            'commonground_survey_submissions_total',
            'Survey submissions by outcome',
            ['outcome']  # ok/invalid/not_found/conflict/error
        )

        self.answers_processed = Counter(
            'commonground_answers_processed_total',
            'Submitted answers by validation result',
            ['result']  # accepted/skipped
        )

        self.pairwise_comparisons = Counter(
            'commonground_pairwise_comparisons_total',
            'Pairwise comparisons computed'
        )

        # Store metrics
        self.store_transactions = Counter(
            'commonground_store_transactions_total',
            'Store transactions by operation and status',
            ['operation', 'status']  # status: committed/conflict/failed
        )

        # Group metrics
        self.group_operations = Counter(
            'commonground_group_operations_total',
            'Group provisioning and join outcomes',
            ['operation', 'outcome']
        )

        # API metrics
        self.api_requests = Counter(
            'commonground_api_requests_total',
            'Total API requests',
            ['endpoint', 'method', 'status_code']
        )

        self.api_request_duration = Histogram(
            'commonground_api_request_duration_seconds',
            'API request duration',
            ['endpoint', 'method'],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
        )

        # Error metrics
        self.errors = Counter(
            'commonground_errors_total',
            'Total errors by component and type',
            ['component', 'error_type']
        )

    def record_answers(self, accepted: int, skipped: int):
        self.answers_processed.labels(result='accepted').inc(accepted)
        self.answers_processed.labels(result='skipped').inc(skipped)

    def record_transaction(self, operation: str, status: str):
        self.store_transactions.labels(operation=operation, status=status).inc()

    def record_group_operation(self, operation: str, outcome: str):
        """Record a group operation

        Args:
            operation: create/join
            outcome: success/orphaned/failed/not_found/invalid_code/already_member/conflict
        """
        self.group_operations.labels(operation=operation, outcome=outcome).inc()

    def record_error(self, component: str, error: Exception):
        """Record an error

        Args:
            component: Component name (scoring/groups/database/api)
            error: Exception instance
        """
        error_type = type(error).__name__
        self.errors.labels(component=component, error_type=error_type).inc()


# Global metrics instance
metrics = CommonGroundMetrics()


def get_metrics_text() -> str:
    """Get Prometheus metrics in text format

    Returns:
        Metrics text suitable for /metrics endpoint
    """
    return generate_latest(REGISTRY).decode('utf-8')
