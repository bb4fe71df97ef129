"""
Services module for Fleetwatch
"""
from fleetwatch.services.line_classifier import LineClassifier
from fleetwatch.services.error_normalizer import ErrorNormalizer
from fleetwatch.services.log_summarizer import LogSummarizer, LogSummary
from fleetwatch.services.anomaly_engine import AnomalyEngine, AnomalyType, Severity
from fleetwatch.services.health_scorer import HealthScorer, HealthFactors, HealthResult
from fleetwatch.services.orchestrator import Orchestrator, Notifier, LoggingNotifier


def build_orchestrator(store, settings, notifier=None):
    """Wire the analytics services from a Flask config mapping"""
    classifier = LineClassifier()
    normalizer = ErrorNormalizer()
    summarizer = LogSummarizer(
        store, classifier, normalizer,
        top_n=settings.get('SUMMARY_TOP_N', 3),
    )
    engine = AnomalyEngine(
        store, classifier, normalizer,
        history_window=settings.get('ANOMALY_HISTORY_WINDOW', 20),
        spike_multiplier=settings.get('SPIKE_MULTIPLIER', 2.0),
        new_pattern_min_history=settings.get('NEW_PATTERN_MIN_HISTORY', 2),
        silence_multiplier=settings.get('SILENCE_MULTIPLIER', 3.0),
        volume_window_days=settings.get('VOLUME_WINDOW_DAYS', 7),
        volume_sigma=settings.get('VOLUME_SIGMA', 3.0),
    )
    scorer = HealthScorer(
        store, classifier,
        error_window=settings.get('HEALTH_ERROR_WINDOW', 10),
    )
    return Orchestrator(store, summarizer, engine, scorer, notifier=notifier)


__all__ = ['LineClassifier', 'ErrorNormalizer', 'LogSummarizer', 'LogSummary', 'AnomalyEngine',
           'AnomalyType', 'Severity', 'HealthScorer', 'HealthFactors', 'HealthResult',
           'Orchestrator', 'Notifier', 'LoggingNotifier', 'build_orchestrator']
