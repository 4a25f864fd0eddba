import apps.communication.models
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
            name='Notification',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('title', models.CharField(max_length=100, verbose_name='title')),
                ('message', models.CharField(max_length=300, verbose_name='message')),
                ('notification_type', models.CharField(choices=[('complaint', 'Complaint'), ('resource', 'Resource'), ('system', 'System'), ('reminder', 'Reminder'), ('warning', 'Warning'), ('success', 'Success')], default='system', max_length=20, verbose_name='notification type')),
                ('category', models.CharField(choices=[('new', 'New'), ('update', 'Update'), ('resolved', 'Resolved'), ('borrowed', 'Borrowed'), ('returned', 'Returned'), ('overdue', 'Overdue'), ('maintenance', 'Maintenance'), ('borrow-request', 'Borrow Request'), ('borrow-approval', 'Borrow Approval'), ('borrow-rejection', 'Borrow Rejection'), ('other', 'Other')], default='other', max_length=20, verbose_name='category')),
                ('priority', models.CharField(choices=[('low', 'Low'), ('medium', 'Medium'), ('high', 'High')], default='medium', max_length=10, verbose_name='priority')),
                ('related_entity_type', models.CharField(blank=True, choices=[('complaint', 'Complaint'), ('resource', 'Resource'), ('user', 'User')], max_length=20, verbose_name='related entity type')),
                ('related_entity_id', models.UUIDField(blank=True, null=True, verbose_name='related entity id')),
                ('is_read', models.BooleanField(default=False, verbose_name='is read')),
                ('read_at', models.DateTimeField(blank=True, null=True, verbose_name='read at')),
                ('expires_at', models.DateTimeField(blank=True, default=apps.communication.models.default_expiry, null=True, verbose_name='expires at')),
                ('action_url', models.CharField(blank=True, max_length=200, verbose_name='action URL')),
                ('action_text', models.CharField(blank=True, max_length=30, verbose_name='action text')),
                ('metadata', models.JSONField(blank=True, default=dict, verbose_name='metadata')),
                ('is_push', models.BooleanField(default=True, verbose_name='push notification')),
                ('is_email', models.BooleanField(default=False, verbose_name='email notification')),
                ('recipient', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to=settings.AUTH_USER_MODEL, verbose_name='recipient')),
                ('sender', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='sent_notifications', to=settings.AUTH_USER_MODEL, verbose_name='sender')),
            ],
            options={
                'verbose_name': 'Notification',
                'verbose_name_plural': 'Notifications',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['recipient', 'is_read', 'created_at'], name='notif_recipient_read_idx'),
                    models.Index(fields=['recipient', 'notification_type'], name='notif_recipient_type_idx'),
                    models.Index(fields=['expires_at'], name='notif_expires_idx'),
                ],
            },
        ),
    ]
