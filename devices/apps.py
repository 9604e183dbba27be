from django.apps import AppConfig
from django.conf import settings


class DevicesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'devices'
    verbose_name = 'Wearable devices'

    def ready(self):
        from telemetry.log import configure_logging

        # handlers come from settings.LOGGING
        configure_logging(json_output=not settings.DEBUG, stdlib_handler=False)
