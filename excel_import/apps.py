from django.apps import AppConfig


class ExcelImportConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'excel_import'

    def ready(self):
        # Connect the session broadcast receivers
        from . import signals  # noqa: F401
