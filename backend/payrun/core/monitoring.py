import sentry_sdk

from payrun.core.config import settings


def configure_error_monitoring() -> None:
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.env,
            traces_sample_rate=0.2,
        )


def report_exception(exc: BaseException, **context) -> None:
    """Forward an exception raised outside a request to Sentry, tagged with context."""
    with sentry_sdk.new_scope() as scope:
        for key, value in context.items():
            scope.set_tag(key, value)
        sentry_sdk.capture_exception(exc)
