from django.apps import AppConfig


class FastingConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'fasting'
    verbose_name = 'Fasting'
