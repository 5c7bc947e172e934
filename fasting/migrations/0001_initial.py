from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='FastingSession',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('session_id', models.CharField(help_text='Stable id of the session, shared with the in-memory record', max_length=64, unique=True)),
                ('source', models.CharField(choices=[('Manual', 'Manual'), ('ExternalSync', 'ExternalSync')], default='Manual', help_text="Source of the fasting data ('Manual' or 'ExternalSync')", max_length=50)),
                ('start', models.DateTimeField(help_text='Fasting start time')),
                ('end', models.DateTimeField(blank=True, help_text='Fasting end time (empty while the fast is running)', null=True)),
                ('goal_hours', models.FloatField(blank=True, help_text='Goal for this fast in hours (empty means the default goal)', null=True)),
                ('eating_window', models.DurationField(blank=True, help_text='Time since the previous fast ended, captured when this fast began', null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Fasting Session',
                'verbose_name_plural': 'Fasting Sessions',
                'ordering': ['-start'],
                'indexes': [
                    models.Index(fields=['-start'], name='fasting_session_start_idx'),
                    models.Index(fields=['source'], name='fasting_session_source_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ScheduledNotification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('session_id', models.CharField(db_index=True, help_text='Session this reminder belongs to', max_length=64)),
                ('kind', models.CharField(choices=[('goal', 'Goal reached')], default='goal', max_length=20)),
                ('fire_at', models.DateTimeField(help_text='When the reminder should be delivered')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Scheduled Notification',
                'verbose_name_plural': 'Scheduled Notifications',
                'ordering': ['fire_at'],
                'unique_together': {('session_id', 'kind')},
            },
        ),
    ]
