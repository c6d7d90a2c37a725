from django.apps import AppConfig


class CoreConfig(AppConfig):
    name = "core"
    verbose_name = "Checkout core"

    def ready(self):
        # registers the setting_changed receiver that resets the cached config
        from . import config  # noqa: F401
