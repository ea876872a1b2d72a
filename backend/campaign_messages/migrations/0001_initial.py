# Generated manually

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('campaigns', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='CampaignMessage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('question', models.TextField()),
                ('answer', models.TextField(blank=True, null=True)),
                ('answered_at', models.DateTimeField(blank=True, null=True)),
                ('spam_score', models.FloatField(default=0)),
                ('is_public', models.BooleanField(default=False)),
                ('is_edited', models.BooleanField(default=False)),
                ('edited_at', models.DateTimeField(blank=True, null=True)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('answered_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='answered_campaign_messages', to=settings.AUTH_USER_MODEL)),
                ('campaign', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='questions', to='campaigns.campaign')),
                ('sender', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sent_campaign_messages', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'campaign_messages',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['campaign', 'is_public', 'created_at'], name='idx_cmsg_campaign_public'),
                    models.Index(fields=['sender', 'created_at'], name='idx_cmsg_sender_created'),
                    models.Index(fields=['campaign', 'sender', 'created_at'], name='idx_cmsg_campaign_sender'),
                ],
            },
        ),
    ]
