import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Project',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=255)),
                ('location', models.CharField(blank=True, default='', max_length=255)),
                ('structural_elements_count', models.IntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name='SubProject',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('structural_elements_count', models.IntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('project', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE,
                                              related_name='sub_projects', to='excel_import.project')),
            ],
        ),
        migrations.CreateModel(
            name='StructuralElement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('serial_no', models.CharField(blank=True, default='', max_length=64)),
                ('structure_number', models.CharField(max_length=128)),
                ('drawing_no', models.CharField(blank=True, default='', max_length=128)),
                ('level', models.CharField(blank=True, default='', max_length=128)),
                ('member_type', models.CharField(blank=True, default='', max_length=128)),
                ('grid_no', models.CharField(blank=True, default='', max_length=128)),
                ('part_mark_no', models.CharField(blank=True, default='', max_length=128)),
                ('section_sizes', models.CharField(blank=True, default='', max_length=128)),
                ('length_mm', models.FloatField(default=0)),
                ('qty', models.FloatField(default=0)),
                ('section_depth_mm', models.FloatField(default=0)),
                ('flange_width_mm', models.FloatField(default=0)),
                ('web_thickness_mm', models.FloatField(default=0)),
                ('flange_thickness_mm', models.FloatField(default=0)),
                ('fireproofing_thickness', models.FloatField(default=0)),
                ('surface_area_sqm', models.FloatField(default=0)),
                ('fire_proofing_workflow', models.CharField(blank=True, max_length=64, null=True)),
                ('status', models.CharField(choices=[('active', 'Active'), ('completed', 'Completed'),
                                                     ('on_hold', 'On hold'), ('cancelled', 'Cancelled')],
                                            default='active', max_length=20)),
                ('project_name', models.CharField(max_length=255)),
                ('site_location', models.CharField(blank=True, default='', max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT,
                                                 to=settings.AUTH_USER_MODEL)),
                ('project', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE,
                                              related_name='structural_elements', to='excel_import.project')),
                ('sub_project', models.ForeignKey(blank=True, null=True,
                                                  on_delete=django.db.models.deletion.CASCADE,
                                                  related_name='structural_elements', to='excel_import.subproject')),
            ],
            options={
                'indexes': [
                    models.Index(fields=['project', 'structure_number'], name='excel_impor_project_5c1f0e_idx'),
                    models.Index(fields=['sub_project', 'structure_number'], name='excel_impor_sub_pro_8a2d4b_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Job',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('job_title', models.CharField(max_length=255)),
                ('job_description', models.TextField(blank=True, default='')),
                ('job_type', models.CharField(max_length=64)),
                ('fire_proofing_type', models.CharField(blank=True, default='', max_length=64)),
                ('order_index', models.IntegerField()),
                ('status', models.CharField(choices=[('not_started', 'Not started'), ('in_progress', 'In progress'),
                                                     ('completed', 'Completed'), ('on_hold', 'On hold'),
                                                     ('cancelled', 'Cancelled')],
                                            default='not_started', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT,
                                                 to=settings.AUTH_USER_MODEL)),
                ('project', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE,
                                              related_name='jobs', to='excel_import.project')),
                ('structural_element', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE,
                                                         related_name='jobs', to='excel_import.structuralelement')),
                ('sub_project', models.ForeignKey(blank=True, null=True,
                                                  on_delete=django.db.models.deletion.CASCADE,
                                                  related_name='jobs', to='excel_import.subproject')),
            ],
            options={
                'ordering': ['structural_element_id', 'order_index'],
            },
        ),
        migrations.CreateModel(
            name='UploadSession',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('upload_id', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('file_name', models.CharField(max_length=255)),
                ('file_path', models.CharField(max_length=1024)),
                ('total_rows', models.IntegerField()),
                ('total_batches', models.IntegerField()),
                ('batch_size', models.IntegerField(default=50)),
                ('status', models.CharField(choices=[('in_progress', 'In progress'), ('completed', 'Completed'),
                                                     ('partial_success', 'Partial success'), ('failed', 'Failed')],
                                            db_index=True, default='in_progress', max_length=20)),
                ('batches', models.JSONField(default=list)),
                ('summary', models.JSONField(default=dict)),
                ('task_id', models.CharField(blank=True, max_length=255, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE,
                                                 to=settings.AUTH_USER_MODEL)),
                ('project', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE,
                                              related_name='upload_sessions', to='excel_import.project')),
                ('sub_project', models.ForeignKey(blank=True, null=True,
                                                  on_delete=django.db.models.deletion.SET_NULL,
                                                  related_name='upload_sessions', to='excel_import.subproject')),
            ],
            options={
                'indexes': [
                    models.Index(fields=['project', 'status'], name='excel_impor_project_3e7b91_idx'),
                    models.Index(fields=['created_by', '-created_at'], name='excel_impor_created_c4d2a7_idx'),
                ],
            },
        ),
    ]
