from django.apps import AppConfig


class AnamnesisConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.anamnesis'

    def ready(self):
        import apps.anamnesis.signals  # noqa
