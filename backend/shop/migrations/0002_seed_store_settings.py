from django.db import migrations


def seed_store_settings(apps, schema_editor):
    StoreSettings = apps.get_model("shop", "StoreSettings")
    StoreSettings.objects.get_or_create(id=1)


class Migration(migrations.Migration):
    dependencies = [
        ("shop", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(seed_store_settings, migrations.RunPython.noop),
    ]
