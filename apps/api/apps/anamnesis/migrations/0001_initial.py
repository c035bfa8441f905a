import uuid
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


ANAMNESIS_TYPE_CHOICES = [('ADULT', 'Adult'), ('PEDIATRIC', 'Pediatric')]
URGENCY_CHOICES = [('ROUTINE', 'Routine'), ('PRIORITY', 'Priority'), ('URGENT', 'Urgent')]
ACTION_CHOICES = [
    ('CREATE', 'Create'),
    ('UPDATE', 'Update'),
    ('DELETE', 'Delete'),
    ('VIEW', 'View'),
    ('RESTORE', 'Restore'),
    ('EXPORT', 'Export'),
    ('PRINT', 'Print'),
]
SEVERITY_CHOICES = [('CRITICAL', 'Critical'), ('HIGH', 'High'), ('MEDIUM', 'Medium'), ('LOW', 'Low')]
CHANGE_TYPE_CHOICES = [('ADDED', 'Added'), ('REMOVED', 'Removed'), ('MODIFIED', 'Modified')]
CONTEXT_TYPE_CHOICES = [('patient', 'Patient'), ('appointment', 'Appointment')]


def anamnesis_fields():
    return [
        ('anamnesis_type', models.CharField(choices=ANAMNESIS_TYPE_CHOICES, default='ADULT', max_length=10)),
        ('chief_complaint', models.TextField(blank=True, null=True)),
        ('has_pain', models.BooleanField(default=False)),
        ('pain_intensity', models.PositiveSmallIntegerField(blank=True, null=True)),
        ('perceived_urgency', models.CharField(blank=True, choices=URGENCY_CHOICES, max_length=10, null=True)),
        ('has_chronic_diseases', models.BooleanField(default=False)),
        ('has_allergies', models.BooleanField(default=False)),
        ('has_current_medication', models.BooleanField(default=False)),
        ('is_pregnant', models.BooleanField(blank=True, null=True)),
        ('exposed_to_tobacco_smoke', models.BooleanField(blank=True, null=True)),
        ('bruxism', models.BooleanField(blank=True, null=True)),
        ('brushings_per_day', models.PositiveSmallIntegerField(blank=True, null=True)),
        ('uses_dental_floss', models.BooleanField(blank=True, null=True)),
        ('last_dental_visit', models.DateField(blank=True, null=True)),
        ('has_sucking_habits', models.BooleanField(blank=True, null=True)),
        ('breastfeeding_recorded', models.BooleanField(blank=True, null=True)),
        ('payload', models.JSONField(blank=True, default=dict)),
    ]


def technical_context_fields():
    return [
        ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
        ('user_agent', models.TextField(blank=True, default='')),
        ('session_id', models.CharField(blank=True, default='', max_length=255)),
        ('request_path', models.CharField(blank=True, default='', max_length=500)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('clinical', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='PatientAnamnesis',
            fields=anamnesis_fields() + [
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('current_version_number', models.PositiveIntegerField(default=1)),
                ('has_pending_reviews', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('patient', models.OneToOneField(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='anamnesis',
                    to='clinical.patient'
                )),
                ('created_by', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='created_anamneses',
                    to=settings.AUTH_USER_MODEL
                )),
                ('updated_by', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='updated_anamneses',
                    to=settings.AUTH_USER_MODEL
                )),
            ],
            options={
                'verbose_name': 'Patient Anamnesis',
                'verbose_name_plural': 'Patient Anamneses',
                'db_table': 'patient_anamnesis',
                'constraints': [
                    models.CheckConstraint(
                        condition=models.Q(current_version_number__gte=1),
                        name='chk_anamnesis_version_positive'
                    ),
                    models.CheckConstraint(
                        condition=models.Q(pain_intensity__isnull=True) | models.Q(pain_intensity__lte=10),
                        name='chk_anamnesis_pain_scale'
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='AnamnesisVersion',
            fields=anamnesis_fields() + technical_context_fields() + [
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('version_number', models.PositiveIntegerField()),
                ('reason', models.TextField(blank=True, default='')),
                ('change_summary', models.JSONField(blank=True, default=dict)),
                ('integrity_hash', models.CharField(max_length=64)),
                ('field_schema_version', models.PositiveSmallIntegerField()),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('anamnesis', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='versions',
                    to='anamnesis.patientanamnesis'
                )),
                ('appointment', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='anamnesis_versions',
                    to='clinical.appointment'
                )),
                ('restored_from_version', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='restorations',
                    to='anamnesis.anamnesisversion'
                )),
                ('created_by', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='anamnesis_versions',
                    to=settings.AUTH_USER_MODEL
                )),
            ],
            options={
                'verbose_name': 'Anamnesis Version',
                'verbose_name_plural': 'Anamnesis Versions',
                'db_table': 'anamnesis_version',
                'ordering': ['-version_number'],
                'indexes': [
                    models.Index(fields=['anamnesis', 'created_at'], name='idx_anamnesis_version_created'),
                ],
                'constraints': [
                    models.UniqueConstraint(
                        fields=('anamnesis', 'version_number'),
                        name='uniq_anamnesis_version_number'
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='AnamnesisAuditLog',
            fields=technical_context_fields() + [
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('action', models.CharField(choices=ACTION_CHOICES, max_length=10)),
                ('severity', models.CharField(choices=SEVERITY_CHOICES, max_length=10)),
                ('actor_role', models.CharField(blank=True, default='', max_length=50)),
                ('performed_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('previous_version_number', models.PositiveIntegerField(blank=True, null=True)),
                ('new_version_number', models.PositiveIntegerField(blank=True, null=True)),
                ('changes_summary', models.JSONField(blank=True, default=dict)),
                ('reason', models.TextField(blank=True, default='')),
                ('integrity_hash', models.CharField(blank=True, default='', max_length=64)),
                ('anamnesis', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='audit_logs',
                    to='anamnesis.patientanamnesis'
                )),
                ('patient', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='anamnesis_audit_logs',
                    to='clinical.patient'
                )),
                ('version', models.ForeignKey(
                    blank=True,
                    null=True,
                    help_text='Version produced (mutations) or observed (access events)',
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='audit_logs',
                    to='anamnesis.anamnesisversion'
                )),
                ('appointment', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='anamnesis_audit_logs',
                    to='clinical.appointment'
                )),
                ('actor', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='anamnesis_audit_logs',
                    to=settings.AUTH_USER_MODEL
                )),
            ],
            options={
                'verbose_name': 'Anamnesis Audit Log',
                'verbose_name_plural': 'Anamnesis Audit Logs',
                'db_table': 'anamnesis_audit_log',
                'ordering': ['-performed_at'],
                'indexes': [
                    models.Index(fields=['anamnesis', 'performed_at'], name='idx_anam_audit_performed'),
                    models.Index(fields=['patient'], name='idx_anam_audit_patient'),
                    models.Index(fields=['action'], name='idx_anam_audit_action'),
                    models.Index(fields=['severity'], name='idx_anam_audit_severity'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AnamnesisFieldDiff',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('position', models.PositiveIntegerField()),
                ('field_path', models.CharField(max_length=255)),
                ('field_label', models.CharField(max_length=255)),
                ('field_type', models.CharField(max_length=20)),
                ('old_value', models.JSONField(blank=True, null=True)),
                ('new_value', models.JSONField(blank=True, null=True)),
                ('old_value_display', models.TextField(blank=True, null=True)),
                ('new_value_display', models.TextField(blank=True, null=True)),
                ('is_critical', models.BooleanField(default=False)),
                ('change_type', models.CharField(choices=CHANGE_TYPE_CHOICES, max_length=10)),
                ('audit_log', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='field_diffs',
                    to='anamnesis.anamnesisauditlog'
                )),
            ],
            options={
                'verbose_name': 'Anamnesis Field Diff',
                'verbose_name_plural': 'Anamnesis Field Diffs',
                'db_table': 'anamnesis_field_diff',
                'ordering': ['audit_log', 'position'],
                'constraints': [
                    models.UniqueConstraint(fields=('audit_log', 'position'), name='uniq_field_diff_position'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AnamnesisPendingReview',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('field_path', models.CharField(max_length=255)),
                ('field_label', models.CharField(max_length=255)),
                ('old_value', models.JSONField(blank=True, null=True)),
                ('new_value', models.JSONField(blank=True, null=True)),
                ('old_value_display', models.TextField(blank=True, null=True)),
                ('new_value_display', models.TextField(blank=True, null=True)),
                ('reason', models.TextField(blank=True, default='')),
                ('severity', models.CharField(choices=SEVERITY_CHOICES, max_length=10)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('reviewed_at', models.DateTimeField(blank=True, null=True)),
                ('is_approved', models.BooleanField(blank=True, null=True)),
                ('review_notes', models.TextField(blank=True, default='')),
                ('anamnesis', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='pending_reviews',
                    to='anamnesis.patientanamnesis'
                )),
                ('patient', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='anamnesis_pending_reviews',
                    to='clinical.patient'
                )),
                ('audit_log', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='pending_reviews',
                    to='anamnesis.anamnesisauditlog'
                )),
                ('created_by', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='created_anamnesis_reviews',
                    to=settings.AUTH_USER_MODEL
                )),
                ('reviewed_by', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='reviewed_anamnesis_changes',
                    to=settings.AUTH_USER_MODEL
                )),
            ],
            options={
                'verbose_name': 'Anamnesis Pending Review',
                'verbose_name_plural': 'Anamnesis Pending Reviews',
                'db_table': 'anamnesis_pending_review',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['anamnesis', 'reviewed_at'], name='idx_anam_review_pending'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AuditContextLink',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('context_type', models.CharField(choices=CONTEXT_TYPE_CHOICES, max_length=20)),
                ('context_id', models.UUIDField()),
                ('occurred_at', models.DateTimeField()),
                ('anamnesis_audit_log', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='context_links',
                    to='anamnesis.anamnesisauditlog'
                )),
                ('clinical_audit_log', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='context_links',
                    to='clinical.clinicalauditlog'
                )),
            ],
            options={
                'verbose_name': 'Audit Context Link',
                'verbose_name_plural': 'Audit Context Links',
                'db_table': 'audit_context_link',
                'indexes': [
                    models.Index(
                        fields=['context_type', 'context_id', 'occurred_at'],
                        name='idx_context_link_lookup'
                    ),
                ],
                'constraints': [
                    models.CheckConstraint(
                        condition=(
                            models.Q(anamnesis_audit_log__isnull=False, clinical_audit_log__isnull=True)
                            | models.Q(anamnesis_audit_log__isnull=True, clinical_audit_log__isnull=False)
                        ),
                        name='chk_context_link_single_target'
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(anamnesis_audit_log__isnull=False),
                        fields=('context_type', 'context_id', 'anamnesis_audit_log'),
                        name='uniq_context_link_anamnesis'
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(clinical_audit_log__isnull=False),
                        fields=('context_type', 'context_id', 'clinical_audit_log'),
                        name='uniq_context_link_clinical'
                    ),
                ],
            },
        ),
    ]
