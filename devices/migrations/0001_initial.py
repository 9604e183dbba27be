import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Device',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('device_id', models.CharField(max_length=64)),
                ('name', models.CharField(blank=True, max_length=128)),
                ('device_type', models.CharField(choices=[('heart_rate', 'Heart Rate'), ('activity_tracker', 'Activity Tracker'), ('smart_watch', 'Smart Watch'), ('cycling_power', 'Cycling Power'), ('running_speed_cadence', 'Running Speed Cadence'), ('glucose', 'Glucose'), ('blood_pressure', 'Blood Pressure'), ('other', 'Other')], default='other', max_length=32)),
                ('capabilities', models.JSONField(blank=True, default=list)),
                ('battery_level', models.PositiveSmallIntegerField(blank=True, help_text='Last reported battery level in percent', null=True, validators=[django.core.validators.MaxValueValidator(100)])),
                ('manufacturer', models.CharField(blank=True, max_length=128)),
                ('model_number', models.CharField(blank=True, max_length=128)),
                ('firmware_version', models.CharField(blank=True, max_length=64)),
                ('last_connected', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='devices', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['name'],
            },
        ),
        migrations.AddConstraint(
            model_name='device',
            constraint=models.UniqueConstraint(fields=('user', 'device_id'), name='unique_device_per_user'),
        ),
        migrations.CreateModel(
            name='HeartRateReading',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sensor_timestamp', models.BigIntegerField(help_text='Sensor timestamp in nanoseconds')),
                ('bpm', models.IntegerField(help_text='Heart rate in beats per minute')),
                ('rr_intervals', models.JSONField(blank=True, default=list, help_text='RR intervals in milliseconds')),
                ('energy', models.IntegerField(blank=True, help_text='Energy expenditure in kilojoules (if available)', null=True)),
                ('sensor_contact', models.BooleanField(blank=True, help_text='Skin contact, when the sensor supports detecting it', null=True)),
                ('confidence', models.PositiveSmallIntegerField(default=80, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='Timestamp when the reading was stored in database')),
                ('device', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='heart_rate_readings', to='devices.device')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='ActivityReading',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sensor_timestamp', models.BigIntegerField(help_text='Sensor timestamp in nanoseconds')),
                ('speed', models.FloatField(help_text='Instantaneous speed in m/s')),
                ('pace', models.FloatField(help_text='Pace in min/km, 0 when standing still')),
                ('cadence', models.PositiveIntegerField(default=0, help_text='Steps per minute')),
                ('distance', models.FloatField(default=0, help_text='Total distance in metres')),
                ('stride_length', models.FloatField(blank=True, help_text='Stride length in metres (if available)', null=True)),
                ('calories', models.PositiveIntegerField(default=0)),
                ('confidence', models.PositiveSmallIntegerField(default=90, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('device', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='activity_readings', to='devices.device')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
    ]
