import uuid
from decimal import Decimal

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
            name='Activity',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('actor_id', models.UUIDField(db_index=True)),
                ('actor_name', models.CharField(max_length=300)),
                ('actor_email', models.EmailField(blank=True, max_length=254)),
                ('action', models.CharField(max_length=500)),
                ('type', models.CharField(choices=[('enrollment', 'Enrollment'), ('course_creation', 'Course creation'), ('user_registration', 'User registration'), ('payment', 'Payment'), ('completion', 'Completion')], db_index=True, default='enrollment', max_length=30)),
                ('course_id', models.UUIDField(blank=True, null=True)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('timestamp', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
            ],
            options={
                'verbose_name': 'Activity',
                'verbose_name_plural': 'Activities',
                'ordering': ['-timestamp'],
            },
        ),
        migrations.CreateModel(
            name='Course',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(max_length=300, verbose_name='Title')),
                ('slug', models.SlugField(max_length=320, unique=True)),
                ('description', models.TextField(blank=True, verbose_name='Description')),
                ('price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))], verbose_name='Price')),
                ('instructor_name', models.CharField(blank=True, max_length=200)),
                ('thumbnail', models.URLField(blank=True, max_length=500)),
                ('enrollment_count', models.PositiveIntegerField(default=0)),
                ('total_revenue', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Course',
                'verbose_name_plural': 'Courses',
                'ordering': ['-created_at'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('price__gte', 0)), name='course_price_non_negative'),
                    models.CheckConstraint(condition=models.Q(('total_revenue__gte', 0)), name='course_revenue_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Enrollment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('amount_paid', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))])),
                ('payment_reference', models.CharField(blank=True, help_text='Processor payment id; empty for free and manual enrollments', max_length=255, null=True, verbose_name='Payment reference')),
                ('source', models.CharField(choices=[('self_service', 'Self-service'), ('payment', 'Payment checkout'), ('manual', 'Manual (administrator)')], default='self_service', max_length=20)),
                ('progress', models.PositiveSmallIntegerField(default=0, help_text='Overall completion percentage 0-100', validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ('completed_lectures', models.JSONField(blank=True, default=list, help_text='["<lecture-id>", ...]')),
                ('enrolled_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('course', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='enrollments', to='enrollments.course')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='enrollments', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Enrollment',
                'verbose_name_plural': 'Enrollments',
                'ordering': ['-enrolled_at', '-id'],
                'indexes': [models.Index(fields=['course', 'enrolled_at'], name='enrollment_course_date_idx')],
                'constraints': [
                    models.UniqueConstraint(fields=('user', 'course'), name='enrollment_unique_user_course'),
                    models.CheckConstraint(condition=models.Q(('amount_paid__gte', 0)), name='enrollment_amount_non_negative'),
                    models.CheckConstraint(condition=models.Q(('progress__lte', 100)), name='enrollment_progress_max_100'),
                ],
            },
        ),
    ]
