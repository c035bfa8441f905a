import uuid
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('authz', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Patient',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('first_name', models.CharField(max_length=100)),
                ('last_name', models.CharField(max_length=100)),
                ('birth_date', models.DateField(blank=True, null=True)),
                ('sex', models.CharField(
                    blank=True,
                    choices=[
                        ('female', 'Female'),
                        ('male', 'Male'),
                        ('other', 'Other'),
                        ('unknown', 'Unknown')
                    ],
                    max_length=20,
                    null=True
                )),
                ('email', models.EmailField(blank=True, max_length=254, null=True)),
                ('phone', models.CharField(blank=True, max_length=50, null=True)),
                ('is_deleted', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by_user', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='created_patients',
                    to=settings.AUTH_USER_MODEL
                )),
            ],
            options={
                'verbose_name': 'Patient',
                'verbose_name_plural': 'Patients',
                'db_table': 'patient',
                'indexes': [
                    models.Index(fields=['last_name', 'first_name'], name='idx_patient_name'),
                    models.Index(fields=['is_deleted'], name='idx_patient_deleted'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Appointment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('status', models.CharField(
                    choices=[
                        ('draft', 'Draft'),
                        ('confirmed', 'Confirmed'),
                        ('checked_in', 'Checked In'),
                        ('completed', 'Completed'),
                        ('cancelled', 'Cancelled'),
                        ('no_show', 'No Show')
                    ],
                    default='draft',
                    max_length=20
                )),
                ('scheduled_start', models.DateTimeField()),
                ('scheduled_end', models.DateTimeField()),
                ('notes', models.TextField(blank=True, null=True)),
                ('is_deleted', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('patient', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='appointments',
                    to='clinical.patient'
                )),
                ('practitioner', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='appointments',
                    to='authz.practitioner'
                )),
            ],
            options={
                'verbose_name': 'Appointment',
                'verbose_name_plural': 'Appointments',
                'db_table': 'appointment',
                'indexes': [
                    models.Index(fields=['patient'], name='idx_appointment_patient'),
                    models.Index(fields=['practitioner'], name='idx_appointment_practitioner'),
                    models.Index(fields=['scheduled_start'], name='idx_appointment_start'),
                    models.Index(fields=['status'], name='idx_appointment_status'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ClinicalAuditLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('action', models.CharField(
                    choices=[
                        ('create', 'Create'),
                        ('update', 'Update'),
                        ('delete', 'Delete'),
                        ('restore', 'Restore')
                    ],
                    max_length=10
                )),
                ('entity_type', models.CharField(
                    choices=[
                        ('PatientAnamnesis', 'Anamnesis'),
                        ('Appointment', 'Appointment'),
                        ('Odontogram', 'Odontogram'),
                        ('Consent', 'Consent')
                    ],
                    help_text='Type of clinical entity (PatientAnamnesis, Appointment, etc.)',
                    max_length=50
                )),
                ('entity_id', models.UUIDField(help_text='UUID of the entity that was changed')),
                ('metadata', models.JSONField(
                    default=dict,
                    help_text='Changed fields, version numbers, request metadata'
                )),
                ('actor_user', models.ForeignKey(
                    blank=True,
                    help_text='User who performed the action (null for system actions)',
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='clinical_audit_logs',
                    to=settings.AUTH_USER_MODEL
                )),
                ('appointment', models.ForeignKey(
                    blank=True,
                    help_text='Related appointment (if applicable)',
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='audit_logs',
                    to='clinical.appointment'
                )),
                ('patient', models.ForeignKey(
                    blank=True,
                    help_text='Related patient (if applicable)',
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='audit_logs',
                    to='clinical.patient'
                )),
            ],
            options={
                'verbose_name': 'Clinical Audit Log',
                'verbose_name_plural': 'Clinical Audit Logs',
                'db_table': 'clinical_audit_log',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['created_at'], name='idx_audit_created_at'),
                    models.Index(fields=['actor_user'], name='idx_audit_actor'),
                    models.Index(fields=['entity_type'], name='idx_audit_entity_type'),
                    models.Index(fields=['entity_id'], name='idx_audit_entity_id'),
                    models.Index(fields=['patient'], name='idx_audit_patient'),
                    models.Index(fields=['action'], name='idx_audit_action'),
                ],
            },
        ),
    ]
