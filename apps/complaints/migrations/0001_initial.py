import apps.core.validators
import django.core.validators
import django.db.models.deletion
import uuid
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Complaint',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('title', models.CharField(max_length=100, validators=[django.core.validators.MinLengthValidator(5)], verbose_name='title')),
                ('description', models.CharField(max_length=1000, validators=[django.core.validators.MinLengthValidator(10)], verbose_name='description')),
                ('category', models.CharField(choices=[('electrical', 'Electrical'), ('plumbing', 'Plumbing'), ('furniture', 'Furniture'), ('cleanliness', 'Cleanliness'), ('noise', 'Noise'), ('security', 'Security'), ('other', 'Other')], max_length=20, verbose_name='category')),
                ('priority', models.CharField(choices=[('low', 'Low'), ('medium', 'Medium'), ('high', 'High'), ('urgent', 'Urgent')], default='medium', editable=False, help_text='Derived from category, age and status', max_length=10, verbose_name='priority')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('in-progress', 'In Progress'), ('awaiting-approval', 'Awaiting Approval'), ('resolved', 'Resolved'), ('rejected', 'Rejected')], db_index=True, default='pending', max_length=20, verbose_name='status')),
                ('hostel_block', models.CharField(choices=[('A', 'Block A'), ('B', 'Block B'), ('C', 'Block C'), ('D', 'Block D')], max_length=1, verbose_name='hostel block')),
                ('room_number', models.CharField(max_length=4, validators=[apps.core.validators.room_number_validator], verbose_name='room number')),
                ('is_anonymous', models.BooleanField(default=False, verbose_name='anonymous')),
                ('tags', models.JSONField(blank=True, default=list, validators=[apps.core.validators.validate_tag_list], verbose_name='tags')),
                ('images', models.JSONField(blank=True, default=list, validators=[apps.core.validators.validate_image_list], verbose_name='images')),
                ('resolution_notes', models.CharField(blank=True, max_length=500, verbose_name='resolution notes')),
                ('estimated_resolution_time', models.DateTimeField(blank=True, null=True, verbose_name='estimated resolution time')),
                ('actual_resolution_time', models.DateTimeField(blank=True, null=True, verbose_name='actual resolution time')),
                ('feedback_resolved', models.BooleanField(blank=True, null=True, verbose_name='confirmed resolved')),
                ('feedback_rating', models.PositiveSmallIntegerField(blank=True, null=True, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(5)], verbose_name='feedback rating')),
                ('feedback_comment', models.CharField(blank=True, max_length=300, verbose_name='feedback comment')),
                ('feedback_at', models.DateTimeField(blank=True, null=True, verbose_name='feedback at')),
                ('assigned_to', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='assigned_complaints', to=settings.AUTH_USER_MODEL, verbose_name='assigned to')),
                ('reported_by', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='complaints', to=settings.AUTH_USER_MODEL, verbose_name='reported by')),
            ],
            options={
                'verbose_name': 'Complaint',
                'verbose_name_plural': 'Complaints',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['hostel_block', 'status'], name='complaint_block_status_idx'),
                    models.Index(fields=['reported_by', 'created_at'], name='complaint_reporter_idx'),
                    models.Index(fields=['priority', 'status'], name='complaint_priority_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ComplaintUpvote',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('complaint', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='upvotes', to='complaints.complaint', verbose_name='complaint')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='complaint_upvotes', to=settings.AUTH_USER_MODEL, verbose_name='user')),
            ],
            options={
                'verbose_name': 'Complaint Upvote',
                'verbose_name_plural': 'Complaint Upvotes',
                'constraints': [
                    models.UniqueConstraint(fields=('complaint', 'user'), name='unique_complaint_upvote'),
                ],
            },
        ),
    ]
