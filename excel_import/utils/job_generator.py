import logging

from excel_import.models import Job
from excel_import.utils.workflow_catalog import WorkflowCatalog

logger = logging.getLogger(__name__)

# Gap between consecutive steps so jobs can be inserted later without renumbering
JOB_ORDER_SPACING = 100


class JobGenerator:
    def __init__(self, catalog: WorkflowCatalog = None):
        self.catalog = catalog or WorkflowCatalog.load()

    def create_jobs(self, element, user):
        """
        Creates one job per workflow step for a persisted element.

        Must be called inside the caller's transaction so the element and its
        jobs commit together.

        Args:
            element (StructuralElement): The saved element carrying a workflow name.
            user (User): The acting user.

        Returns:
            list: The created jobs in step order. Empty when the element has no
            workflow or the workflow is not in the catalog.
        """
        workflow = element.fire_proofing_workflow
        if not workflow:
            return []
        steps = self.catalog.steps(workflow)
        if not steps:
            logger.warning("No job template for workflow %s on element %s", workflow, element.pk)
            return []

        fire_proofing_type = self.catalog.label(workflow)
        jobs = []
        for position, title in enumerate(steps, start=1):
            jobs.append(Job.objects.create(
                structural_element=element,
                project_id=element.project_id,
                sub_project_id=element.sub_project_id,
                job_title=title,
                job_description=f"{title} for {element.structure_number or 'element'}",
                job_type=workflow,
                fire_proofing_type=fire_proofing_type,
                order_index=position * JOB_ORDER_SPACING,
                status='not_started',
                created_by=user,
            ))
        return jobs
