import logging
import traceback

from django.db import DatabaseError, OperationalError, transaction
from django.db.models import F

from excel_import.errors import InfrastructureError, PersistenceError
from excel_import.models import Project, StructuralElement, SubProject
from excel_import.utils import batch_plan
from excel_import.utils.job_generator import JobGenerator
from excel_import.utils.row_transformer import RowError, RowTransformer

logger = logging.getLogger(__name__)


class BatchResult:
    def __init__(self, batch_number, success, elements_created=None, jobs_created=None,
                 duplicates_skipped=0, row_errors=None, error=None):
        self.batch_number = batch_number
        self.success = success
        self.elements_created = elements_created or []
        self.jobs_created = jobs_created or []
        self.duplicates_skipped = duplicates_skipped
        self.row_errors = row_errors or []
        self.error = error

    def __repr__(self):
        state = 'SUCCESS' if self.success else 'FAILED'
        return f"BatchResult({self.batch_number}, {state}, elements={len(self.elements_created)})"


# Runs one batch of rows through transform, duplicate check, persistence and
# job generation inside a single transaction owned by this batch only.
class BatchProcessor:
    def __init__(self, project, user, sub_project=None, transformer=None, job_generator=None):
        self.project = project
        self.user = user
        self.sub_project = sub_project
        self.transformer = transformer or RowTransformer(project, user, sub_project=sub_project)
        self.job_generator = job_generator or JobGenerator(self.transformer.catalog)

    def _duplicate_query(self, validated):
        query = StructuralElement.objects.filter(project=self.project, **validated.business_key())
        if self.sub_project is not None:
            query = query.filter(sub_project=self.sub_project)
        return query

    def _process_rows(self, batch_number, rows, start_row):
        elements_created, jobs_created, row_errors = [], [], []
        duplicates_skipped = 0

        for offset, row in enumerate(rows):
            row_number = start_row + offset
            result = self.transformer.transform(row, row_number)
            if isinstance(result, RowError):
                logger.warning("[BATCH %s] Skipping row: %s", batch_number, result.message)
                row_errors.append(result.to_json_object())
                continue

            try:
                if self._duplicate_query(result).exists():
                    logger.info("[BATCH %s] Skipping duplicate: %s", batch_number, result.fields['structure_number'])
                    duplicates_skipped += 1
                    continue

                element = StructuralElement.objects.create(**result.fields)
                elements_created.append(element.pk)

                if element.fire_proofing_workflow:
                    jobs = self.job_generator.create_jobs(element, self.user)
                    jobs_created.extend(job.pk for job in jobs)
            except OperationalError:
                raise
            except DatabaseError as e:
                raise PersistenceError(f"Row {row_number}: {e}") from e

        if elements_created:
            count = len(elements_created)
            Project.objects.filter(pk=self.project.pk).update(
                structural_elements_count=F('structural_elements_count') + count)
            if self.sub_project is not None:
                SubProject.objects.filter(pk=self.sub_project.pk).update(
                    structural_elements_count=F('structural_elements_count') + count)

        return BatchResult(batch_number, True, elements_created, jobs_created, duplicates_skipped, row_errors)

    def process(self, session, batch_number, rows):
        """
        Processes the rows of one batch and records the outcome on the session.

        Either every element and job of the batch commits, or none does and the
        batch is marked failed with empty created lists. A connection failure
        leaves the batch 'processing' and raises InfrastructureError so the
        queue can retry it.

        Args:
            session (UploadSession): The session owning the batch.
            batch_number (int): The batch to process.
            rows (list): Every parsed row of the file; the batch's range is sliced out.

        Returns:
            BatchResult
        """
        batch = session.get_batch(batch_number)
        batch_rows = rows[batch['start_row'] - 1:batch['end_row']]
        logger.info("[BATCH %s] Processing %d rows (%d-%d) for upload %s", batch_number, len(batch_rows),
                    batch['start_row'], batch['end_row'], session.upload_id)

        session.update_batch_status(batch_number, batch_plan.PROCESSING)
        session.save()

        try:
            with transaction.atomic():
                result = self._process_rows(batch_number, batch_rows, batch['start_row'])
        except OperationalError as e:
            logger.error("[BATCH %s] Store unavailable, transaction rolled back: %s", batch_number, e)
            raise InfrastructureError(f"Batch {batch_number}: {e}") from e
        except PersistenceError as e:
            logger.error("[BATCH %s] Transaction rolled back: %s", batch_number, e)
            session.update_batch_status(
                batch_number, batch_plan.FAILED,
                elements_created=[], jobs_created=[], duplicates_skipped=0, row_errors=[],
                error_message=str(e),
                error_details={'type': type(e.__cause__ or e).__name__, 'stack': traceback.format_exc()})
            session.save()
            return BatchResult(batch_number, False, error=str(e))

        logger.info("[BATCH %s] Transaction committed - %d elements, %d jobs, %d duplicates skipped",
                    batch_number, len(result.elements_created), len(result.jobs_created), result.duplicates_skipped)
        session.update_batch_status(
            batch_number, batch_plan.SUCCESS,
            elements_created=result.elements_created,
            jobs_created=result.jobs_created,
            duplicates_skipped=result.duplicates_skipped,
            row_errors=result.row_errors)
        session.save()
        return result
