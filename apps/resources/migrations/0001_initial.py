import apps.core.validators
import apps.resources.models
import django.core.validators
import django.db.models.deletion
import django.utils.timezone
import uuid
from django.conf import settings
from django.db import migrations, models


CATEGORY_CHOICES = [
    ('electronics', 'Electronics'), ('books', 'Books'), ('sports', 'Sports'), ('kitchen', 'Kitchen'),
    ('tools', 'Tools'), ('study-materials', 'Study Materials'), ('other', 'Other'),
]

BLOCK_CHOICES = [('A', 'Block A'), ('B', 'Block B'), ('C', 'Block C'), ('D', 'Block D')]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Resource',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('name', models.CharField(max_length=100, validators=[django.core.validators.MinLengthValidator(3)], verbose_name='name')),
                ('description', models.CharField(max_length=500, validators=[django.core.validators.MinLengthValidator(10)], verbose_name='description')),
                ('category', models.CharField(choices=CATEGORY_CHOICES, max_length=20, verbose_name='category')),
                ('condition', models.CharField(choices=[('excellent', 'Excellent'), ('good', 'Good'), ('fair', 'Fair'), ('poor', 'Poor')], default='good', max_length=10, verbose_name='condition')),
                ('availability', models.CharField(choices=[('available', 'Available'), ('requested', 'Requested'), ('borrowed', 'Borrowed'), ('maintenance', 'Maintenance'), ('unavailable', 'Unavailable')], db_index=True, default='available', max_length=15, verbose_name='availability')),
                ('hostel_block', models.CharField(choices=BLOCK_CHOICES, max_length=1, verbose_name='hostel block')),
                ('room_number', models.CharField(max_length=4, validators=[apps.core.validators.room_number_validator], verbose_name='room number')),
                ('max_borrow_duration', models.PositiveSmallIntegerField(default=apps.resources.models.default_borrow_duration, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(30)], verbose_name='max borrow duration (days)')),
                ('deposit_required', models.BooleanField(default=False, verbose_name='deposit required')),
                ('deposit_amount', models.DecimalField(decimal_places=2, default=0, max_digits=8, validators=[django.core.validators.MinValueValidator(0)], verbose_name='deposit amount')),
                ('borrowing_rules', models.CharField(blank=True, max_length=300, verbose_name='borrowing rules')),
                ('tags', models.JSONField(blank=True, default=list, validators=[apps.core.validators.validate_tag_list], verbose_name='tags')),
                ('images', models.JSONField(blank=True, default=list, validators=[apps.core.validators.validate_image_list], verbose_name='images')),
                ('is_public', models.BooleanField(default=True, verbose_name='public')),
                ('total_borrows', models.PositiveIntegerField(default=0, verbose_name='total borrows')),
                ('average_rating', models.FloatField(default=0, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(5)], verbose_name='average rating')),
                ('view_count', models.PositiveIntegerField(default=0, verbose_name='view count')),
                ('current_borrower', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='borrowed_resources', to=settings.AUTH_USER_MODEL, verbose_name='current borrower')),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='resources', to=settings.AUTH_USER_MODEL, verbose_name='owner')),
            ],
            options={
                'verbose_name': 'Resource',
                'verbose_name_plural': 'Resources',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['hostel_block', 'availability'], name='resource_block_avail_idx'),
                    models.Index(fields=['category', 'availability'], name='resource_category_idx'),
                    models.Index(fields=['owner', 'created_at'], name='resource_owner_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='WishlistEntry',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('resource', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='wishlist_entries', to='resources.resource')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='wishlist_entries', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Wishlist Entry',
                'verbose_name_plural': 'Wishlist Entries',
                'constraints': [
                    models.UniqueConstraint(fields=('resource', 'user'), name='unique_wishlist_entry'),
                ],
            },
        ),
        migrations.AddField(
            model_name='resource',
            name='wishlist',
            field=models.ManyToManyField(blank=True, related_name='wishlisted_resources', through='resources.WishlistEntry', to=settings.AUTH_USER_MODEL, verbose_name='wishlist'),
        ),
        migrations.CreateModel(
            name='BorrowRequest',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected')], default='pending', max_length=10, verbose_name='status')),
                ('message', models.CharField(blank=True, max_length=200, verbose_name='message')),
                ('decision_at', models.DateTimeField(blank=True, null=True, verbose_name='decision at')),
                ('requester', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='borrow_requests', to=settings.AUTH_USER_MODEL, verbose_name='requester')),
                ('resource', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='borrow_requests', to='resources.resource', verbose_name='resource')),
            ],
            options={
                'verbose_name': 'Borrow Request',
                'verbose_name_plural': 'Borrow Requests',
                'ordering': ['created_at'],
                'indexes': [
                    models.Index(fields=['resource', 'status'], name='borrow_request_status_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'pending')), fields=('resource', 'requester'), name='unique_pending_borrow_request'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BorrowRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('borrowed_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='borrowed at')),
                ('due_date', models.DateTimeField(verbose_name='due date')),
                ('status', models.CharField(choices=[('active', 'Active'), ('returned', 'Returned'), ('overdue', 'Overdue')], default='active', max_length=10, verbose_name='status')),
                ('returned_at', models.DateTimeField(blank=True, null=True, verbose_name='returned at')),
                ('rating', models.PositiveSmallIntegerField(blank=True, null=True, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(5)], verbose_name='rating')),
                ('feedback', models.CharField(blank=True, max_length=200, verbose_name='feedback')),
                ('borrower', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='borrow_records', to=settings.AUTH_USER_MODEL, verbose_name='borrower')),
                ('request', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='borrow_records', to='resources.borrowrequest', verbose_name='request')),
                ('resource', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='borrow_records', to='resources.resource', verbose_name='resource')),
            ],
            options={
                'verbose_name': 'Borrow Record',
                'verbose_name_plural': 'Borrow Records',
                'ordering': ['-borrowed_at'],
                'indexes': [
                    models.Index(fields=['borrower', 'status'], name='borrow_record_borrower_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'active')), fields=('resource',), name='unique_active_borrow'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ResourceRequest',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('title', models.CharField(max_length=100, validators=[django.core.validators.MinLengthValidator(5)], verbose_name='title')),
                ('description', models.CharField(max_length=1000, validators=[django.core.validators.MinLengthValidator(10)], verbose_name='description')),
                ('category', models.CharField(choices=CATEGORY_CHOICES, max_length=20, verbose_name='category')),
                ('status', models.CharField(choices=[('open', 'Open'), ('fulfilled', 'Fulfilled'), ('cancelled', 'Cancelled')], default='open', max_length=10, verbose_name='status')),
                ('fulfilled_at', models.DateTimeField(blank=True, null=True, verbose_name='fulfilled at')),
                ('fulfilled_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='fulfilled_resource_requests', to=settings.AUTH_USER_MODEL, verbose_name='fulfilled by')),
                ('fulfilled_resource', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='fulfilled_requests', to='resources.resource', verbose_name='fulfilled resource')),
                ('requested_by', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='resource_requests', to=settings.AUTH_USER_MODEL, verbose_name='requested by')),
            ],
            options={
                'verbose_name': 'Resource Request',
                'verbose_name_plural': 'Resource Requests',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', 'created_at'], name='resource_request_status_idx'),
                    models.Index(fields=['category', 'status'], name='resource_request_cat_idx'),
                ],
            },
        ),
    ]
