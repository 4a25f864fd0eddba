import apps.core.validators
import apps.users.models
import django.core.validators
import django.utils.timezone
import uuid
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('email', models.EmailField(db_index=True, help_text='Primary email address for communication', max_length=254, unique=True, verbose_name='email address')),
                ('first_name', models.CharField(max_length=50, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=50, verbose_name='last name')),
                ('role', models.CharField(choices=[('student', 'Student'), ('warden', 'Warden'), ('admin', 'Admin')], db_index=True, default='student', max_length=10, verbose_name='role')),
                ('hostel_block', models.CharField(blank=True, choices=[('A', 'Block A'), ('B', 'Block B'), ('C', 'Block C'), ('D', 'Block D')], help_text='Required for students and wardens', max_length=1, verbose_name='hostel block')),
                ('room_number', models.CharField(blank=True, max_length=4, validators=[apps.core.validators.room_number_validator], verbose_name='room number')),
                ('phone_number', models.CharField(blank=True, max_length=10, validators=[apps.core.validators.phone_number_validator], verbose_name='phone number')),
                ('is_verified', models.BooleanField(default=False, help_text='Designates whether the user has verified their email address', verbose_name='verified')),
                ('reputation', models.PositiveSmallIntegerField(default=5, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(10)], verbose_name='reputation')),
                ('total_borrowed', models.PositiveIntegerField(default=0, verbose_name='total borrowed')),
                ('total_lent', models.PositiveIntegerField(default=0, verbose_name='total lent')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'User',
                'verbose_name_plural': 'Users',
                'ordering': ['-date_joined'],
                'indexes': [
                    models.Index(fields=['role', 'hostel_block'], name='user_role_block_idx'),
                    models.Index(fields=['is_active', 'is_verified'], name='user_active_verified_idx'),
                ],
            },
            managers=[
                ('objects', apps.users.models.UserManager()),
            ],
        ),
    ]
