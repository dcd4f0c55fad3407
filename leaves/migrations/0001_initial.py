import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Leave',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('user_id', models.CharField(db_index=True, max_length=50)),
                ('user_name', models.CharField(max_length=150)),
                ('user_email', models.CharField(default='not-provided@example.com', max_length=254)),
                ('leave_type', models.CharField(choices=[('vacation', 'Vacation'), ('wellness', 'Wellness Day'), ('sick', 'Sick Leave'), ('personal', 'Personal'), ('other', 'Other')], max_length=20)),
                ('start_date', models.DateField(db_index=True)),
                ('end_date', models.DateField(db_index=True)),
                ('is_full_day', models.BooleanField(default=True)),
                ('start_time', models.CharField(default='09:00', max_length=5)),
                ('end_time', models.CharField(default='17:00', max_length=5)),
                ('reason', models.TextField(blank=True, default='', max_length=500)),
                ('channel_id', models.CharField(db_index=True, max_length=50)),
                ('channel_name', models.CharField(max_length=150)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected')], default='pending', max_length=20)),
                ('approved_by', models.CharField(blank=True, max_length=50, null=True)),
                ('approved_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['start_date', 'start_time', 'user_name'],
            },
        ),
        migrations.CreateModel(
            name='Team',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('channel_id', models.CharField(max_length=50, unique=True)),
                ('channel_name', models.CharField(max_length=150)),
                ('team_name', models.CharField(max_length=150)),
                ('is_active', models.BooleanField(default=True)),
                ('scheduler_enabled', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name='NotifiedChannel',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('channel_id', models.CharField(db_index=True, max_length=50)),
                ('channel_name', models.CharField(blank=True, default='', max_length=150)),
                ('position', models.PositiveSmallIntegerField(default=0)),
                ('leave', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notified_channels', to='leaves.leave')),
            ],
            options={
                'ordering': ['position'],
            },
        ),
        migrations.CreateModel(
            name='TeamMember',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('user_id', models.CharField(db_index=True, max_length=50)),
                ('user_name', models.CharField(max_length=150)),
                ('user_email', models.CharField(blank=True, max_length=254, null=True)),
                ('role', models.CharField(choices=[('member', 'Member'), ('admin', 'Admin')], default='member', max_length=10)),
                ('added_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('team', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='members', to='leaves.team')),
            ],
            options={
                'ordering': ['added_at', 'id'],
            },
        ),
        migrations.AddIndex(
            model_name='leave',
            index=models.Index(fields=['start_date', 'end_date', 'channel_id'], name='leave_range_channel_idx'),
        ),
        migrations.AddIndex(
            model_name='leave',
            index=models.Index(fields=['user_id', 'start_date'], name='leave_user_start_idx'),
        ),
        migrations.AddConstraint(
            model_name='leave',
            constraint=models.UniqueConstraint(condition=models.Q(('is_full_day', False), ('leave_type', 'other'), _negated=True), fields=('user_id', 'start_date', 'end_date', 'channel_id', 'leave_type'), name='unique_leave_per_user_range_channel_type'),
        ),
        migrations.AddIndex(
            model_name='team',
            index=models.Index(fields=['channel_id', 'is_active'], name='team_channel_active_idx'),
        ),
        migrations.AddConstraint(
            model_name='notifiedchannel',
            constraint=models.UniqueConstraint(fields=('leave', 'channel_id'), name='unique_notified_channel_per_leave'),
        ),
        migrations.AddConstraint(
            model_name='teammember',
            constraint=models.UniqueConstraint(fields=('team', 'user_id'), name='unique_member_per_team'),
        ),
    ]
