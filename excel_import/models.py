import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone

from excel_import.errors import BatchNotFoundError, StateError
from excel_import.utils import batch_plan


class Project(models.Model):
    title = models.CharField(max_length=255)
    location = models.CharField(max_length=255, blank=True, default='')
    structural_elements_count = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.title


class SubProject(models.Model):
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='sub_projects')
    name = models.CharField(max_length=255)
    structural_elements_count = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name


class StructuralElement(models.Model):
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('completed', 'Completed'),
        ('on_hold', 'On hold'),
        ('cancelled', 'Cancelled'),
    ]

    # Fields that together identify an element within its project (or sub-project)
    BUSINESS_KEY_FIELDS = ('structure_number', 'drawing_no', 'level', 'member_type', 'grid_no', 'part_mark_no')

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='structural_elements')
    sub_project = models.ForeignKey(SubProject, on_delete=models.CASCADE, null=True, blank=True,
                                    related_name='structural_elements')
    serial_no = models.CharField(max_length=64, blank=True, default='')
    structure_number = models.CharField(max_length=128)
    drawing_no = models.CharField(max_length=128, blank=True, default='')
    level = models.CharField(max_length=128, blank=True, default='')
    member_type = models.CharField(max_length=128, blank=True, default='')
    grid_no = models.CharField(max_length=128, blank=True, default='')
    part_mark_no = models.CharField(max_length=128, blank=True, default='')
    section_sizes = models.CharField(max_length=128, blank=True, default='')
    length_mm = models.FloatField(default=0)
    qty = models.FloatField(default=0)
    section_depth_mm = models.FloatField(default=0)
    flange_width_mm = models.FloatField(default=0)
    web_thickness_mm = models.FloatField(default=0)
    flange_thickness_mm = models.FloatField(default=0)
    fireproofing_thickness = models.FloatField(default=0)
    surface_area_sqm = models.FloatField(default=0)
    fire_proofing_workflow = models.CharField(max_length=64, null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')
    project_name = models.CharField(max_length=255)
    site_location = models.CharField(max_length=255, blank=True, default='')
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['project', 'structure_number'], name='excel_impor_project_5c1f0e_idx'),
            models.Index(fields=['sub_project', 'structure_number'], name='excel_impor_sub_pro_8a2d4b_idx'),
        ]

    def __str__(self):
        return self.structure_number


class Job(models.Model):
    STATUS_CHOICES = [
        ('not_started', 'Not started'),
        ('in_progress', 'In progress'),
        ('completed', 'Completed'),
        ('on_hold', 'On hold'),
        ('cancelled', 'Cancelled'),
    ]

    structural_element = models.ForeignKey(StructuralElement, on_delete=models.CASCADE, related_name='jobs')
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='jobs')
    sub_project = models.ForeignKey(SubProject, on_delete=models.CASCADE, null=True, blank=True, related_name='jobs')
    job_title = models.CharField(max_length=255)
    job_description = models.TextField(blank=True, default='')
    job_type = models.CharField(max_length=64)
    fire_proofing_type = models.CharField(max_length=64, blank=True, default='')
    order_index = models.IntegerField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='not_started')
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['structural_element_id', 'order_index']

    def __str__(self):
        return f"{self.job_title} ({self.order_index})"


class UploadSessionManager(models.Manager):
    def create_session(self, project, user, file_name, file_path, total_rows, batch_size,
                       sub_project=None, upload_id=None, task_id=None):
        """
        Creates the durable record of an upload with its complete batch plan.
        All batches start pending and the session starts in progress.
        """
        batches = batch_plan.plan_batches(total_rows, batch_size)
        session = self.model(
            upload_id=upload_id or uuid.uuid4(),
            project=project,
            sub_project=sub_project,
            created_by=user,
            file_name=file_name,
            file_path=file_path,
            total_rows=total_rows,
            total_batches=len(batches),
            batch_size=batch_size,
            batches=batches,
            task_id=task_id,
        )
        session.refresh_summary()
        session.refresh_status()
        session.save()
        return session

    def recent_for_project(self, project_id, limit=10):
        return self.filter(project_id=project_id).order_by('-created_at', '-pk')[:limit]

    def recent_for_user(self, user, limit=20):
        return self.filter(created_by=user).order_by('-created_at', '-pk')[:limit]


class UploadSession(models.Model):
    STATUS_CHOICES = [
        (batch_plan.IN_PROGRESS, 'In progress'),
        (batch_plan.COMPLETED, 'Completed'),
        (batch_plan.PARTIAL_SUCCESS, 'Partial success'),
        (batch_plan.SESSION_FAILED, 'Failed'),
    ]

    upload_id = models.UUIDField(unique=True, default=uuid.uuid4, editable=False)
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='upload_sessions')
    sub_project = models.ForeignKey(SubProject, on_delete=models.SET_NULL, null=True, blank=True,
                                    related_name='upload_sessions')
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE)
    file_name = models.CharField(max_length=255)
    file_path = models.CharField(max_length=1024)
    total_rows = models.IntegerField()
    total_batches = models.IntegerField()
    batch_size = models.IntegerField(default=50)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=batch_plan.IN_PROGRESS, db_index=True)
    # The whole batch plan is stored on the session so one read gives a consistent summary
    batches = models.JSONField(default=list)
    summary = models.JSONField(default=dict)
    task_id = models.CharField(max_length=255, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    objects = UploadSessionManager()

    class Meta:
        indexes = [
            models.Index(fields=['project', 'status'], name='excel_impor_project_3e7b91_idx'),
            models.Index(fields=['created_by', '-created_at'], name='excel_impor_created_c4d2a7_idx'),
        ]

    def __str__(self):
        return f"UploadSession({self.upload_id})"

    def get_batch(self, batch_number):
        for batch in self.batches:
            if batch['batch_number'] == batch_number:
                return batch
        raise BatchNotFoundError(f"Batch {batch_number} not found")

    def refresh_summary(self):
        self.summary = batch_plan.summarize(self.batches)

    def refresh_status(self):
        was_finished = self.status in batch_plan.TERMINAL_STATUSES and self.completed_at is not None
        self.status = batch_plan.derive_status(self.batches)
        if self.status in batch_plan.TERMINAL_STATUSES:
            if not was_finished:
                self.completed_at = timezone.now()
        else:
            self.completed_at = None

    def update_batch_status(self, batch_number, status, elements_created=None, jobs_created=None,
                            duplicates_skipped=None, row_errors=None, error_message=None, error_details=None):
        """
        Records the outcome of one batch and recomputes the summary and the
        session status from the full batch list.
        """
        batch = self.get_batch(batch_number)
        batch['status'] = status
        if status in (batch_plan.SUCCESS, batch_plan.FAILED):
            batch['processed_at'] = timezone.now().isoformat()
        if elements_created is not None:
            batch['elements_created'] = list(elements_created)
        if jobs_created is not None:
            batch['jobs_created'] = list(jobs_created)
        if duplicates_skipped is not None:
            batch['duplicates_skipped'] = duplicates_skipped
        if row_errors is not None:
            batch['row_errors'] = list(row_errors)
        if error_message is not None:
            batch['error_message'] = error_message
        if error_details is not None:
            batch['error_details'] = error_details
        self.refresh_summary()
        self.refresh_status()

    def get_pending_batches(self):
        return [b for b in self.batches if b['status'] == batch_plan.PENDING]

    def get_failed_batches(self):
        return [b for b in self.batches if b['status'] == batch_plan.FAILED]

    def get_successful_batches(self):
        return [b for b in self.batches if b['status'] == batch_plan.SUCCESS]

    def get_resumable_batches(self):
        # A batch left 'processing' belongs to an attempt whose transaction never committed
        return [b for b in self.batches if b['status'] in (batch_plan.PENDING, batch_plan.PROCESSING)]

    def _retry(self, batch):
        if batch['status'] != batch_plan.FAILED:
            raise StateError(f"Batch {batch['batch_number']} is not in failed status (current: {batch['status']})")
        batch['status'] = batch_plan.PENDING
        batch['error_message'] = None
        batch['error_details'] = None
        batch['retry_count'] = batch.get('retry_count', 0) + 1

    def retry_batch(self, batch_number):
        self._retry(self.get_batch(batch_number))
        self.refresh_summary()
        self.refresh_status()

    def retry_all_failed(self):
        failed = self.get_failed_batches()
        for batch in failed:
            self._retry(batch)
        self.refresh_summary()
        self.refresh_status()
        return len(failed)

    def clear_batch(self, batch_number, message):
        """
        Empties a batch whose data has been deleted and leaves it failed with
        the given message, so it can be retried later.
        """
        batch = self.get_batch(batch_number)
        batch['status'] = batch_plan.FAILED
        batch['elements_created'] = []
        batch['jobs_created'] = []
        batch['duplicates_skipped'] = 0
        batch['row_errors'] = []
        batch['error_message'] = message
        batch['error_details'] = None
        batch['processed_at'] = timezone.now().isoformat()
        self.refresh_summary()
        self.refresh_status()

    def to_json_object(self, include_batches=True, include_details=False):
        """
        Args:
            include_batches (bool): Include the per-batch records.
            include_details (bool): Keep the technical error_details (stack traces) on failed batches.
        """
        data = {
            'upload_id': str(self.upload_id),
            'project_id': self.project_id,
            'sub_project_id': self.sub_project_id,
            'file_name': self.file_name,
            'status': self.status,
            'total_rows': self.total_rows,
            'total_batches': self.total_batches,
            'batch_size': self.batch_size,
            'summary': self.summary,
            'task_id': self.task_id,
            'created_by': self.created_by_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }
        if include_batches:
            batches = []
            for batch in self.batches:
                batch = dict(batch)
                if not include_details:
                    batch.pop('error_details', None)
                batches.append(batch)
            data['batches'] = batches
        return data

    def created_element_ids(self, successful_only=False):
        ids = []
        for batch in self.batches:
            if successful_only and batch['status'] != batch_plan.SUCCESS:
                continue
            ids.extend(batch.get('elements_created') or [])
        return ids
