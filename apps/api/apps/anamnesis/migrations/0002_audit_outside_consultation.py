from django.db import migrations, models


INFORMATION_SOURCE_CHOICES = [
    ('IN_PERSON', 'In person'),
    ('PHONE', 'Phone'),
    ('EMAIL', 'Email'),
    ('DOCUMENT', 'Document'),
    ('PATIENT_PORTAL', 'Patient portal'),
    ('OTHER', 'Other'),
]


class Migration(migrations.Migration):

    dependencies = [
        ('anamnesis', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='anamnesisauditlog',
            name='is_outside_consultation',
            field=models.BooleanField(
                default=False,
                help_text='Edited without an appointment (CREATE/UPDATE only)'
            ),
        ),
        migrations.AddField(
            model_name='anamnesisauditlog',
            name='information_source',
            field=models.CharField(blank=True, choices=INFORMATION_SOURCE_CHOICES, default='', max_length=20),
        ),
        migrations.AddField(
            model_name='anamnesisauditlog',
            name='verified_with_patient',
            field=models.BooleanField(blank=True, null=True),
        ),
        migrations.AddField(
            model_name='anamnesisauditlog',
            name='requires_review',
            field=models.BooleanField(default=False),
        ),
    ]
