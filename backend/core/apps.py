from django.apps import AppConfig


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'backend.core'
    verbose_name = 'Accounts and audit'

    def ready(self):
        # Campaign cache invalidation on order/product/message writes
        import backend.core.cache_signals  # noqa: F401
