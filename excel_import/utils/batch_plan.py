import math

# Batch statuses
PENDING = 'pending'
PROCESSING = 'processing'
SUCCESS = 'success'
FAILED = 'failed'

# Session statuses
IN_PROGRESS = 'in_progress'
COMPLETED = 'completed'
PARTIAL_SUCCESS = 'partial_success'
SESSION_FAILED = 'failed'

TERMINAL_STATUSES = (COMPLETED, PARTIAL_SUCCESS, SESSION_FAILED)


def new_batch(batch_number, start_row, end_row):
    return {
        'batch_number': batch_number,
        'start_row': start_row,
        'end_row': end_row,
        'status': PENDING,
        'elements_created': [],
        'jobs_created': [],
        'duplicates_skipped': 0,
        'row_errors': [],
        'error_message': None,
        'error_details': None,
        'processed_at': None,
        'retry_count': 0,
    }


def plan_batches(total_rows, batch_size):
    """
    Splits rows 1..total_rows into contiguous, inclusive 1-indexed ranges.

    Args:
        total_rows (int): The number of data rows in the source file.
        batch_size (int): The maximum number of rows per batch.

    Returns:
        list: ceil(total_rows / batch_size) pending batch dictionaries.
    """
    if batch_size < 1:
        raise ValueError("Batch size must be at least 1")
    if total_rows < 0:
        raise ValueError("Total rows cannot be negative")
    batches = []
    for index in range(math.ceil(total_rows / batch_size)):
        start_row = index * batch_size + 1
        end_row = min((index + 1) * batch_size, total_rows)
        batches.append(new_batch(index + 1, start_row, end_row))
    return batches


def summarize(batches):
    """
    Folds the batch list into the session summary. Only successful batches
    contribute created counts; the result depends on nothing but the list.
    """
    summary = {
        'successful_batches': 0,
        'failed_batches': 0,
        'pending_batches': 0,
        'total_elements_created': 0,
        'total_jobs_created': 0,
        'duplicates_skipped': 0,
        'row_errors': 0,
    }
    for batch in batches:
        status = batch['status']
        if status == SUCCESS:
            summary['successful_batches'] += 1
            summary['total_elements_created'] += len(batch.get('elements_created') or [])
            summary['total_jobs_created'] += len(batch.get('jobs_created') or [])
            summary['duplicates_skipped'] += batch.get('duplicates_skipped') or 0
            summary['row_errors'] += len(batch.get('row_errors') or [])
        elif status == FAILED:
            summary['failed_batches'] += 1
        elif status == PENDING:
            summary['pending_batches'] += 1
    return summary


def derive_status(batches):
    total = len(batches)
    succeeded = sum(1 for b in batches if b['status'] == SUCCESS)
    failed = sum(1 for b in batches if b['status'] == FAILED)
    unfinished = total - succeeded - failed

    if total and succeeded == total:
        return COMPLETED
    if unfinished == 0 and succeeded > 0 and failed > 0:
        return PARTIAL_SUCCESS
    if total and failed == total:
        return SESSION_FAILED
    return IN_PROGRESS
