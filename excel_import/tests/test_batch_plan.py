import math
import unittest

from excel_import.utils import batch_plan


class TestPlanBatches(unittest.TestCase):
    def test_ranges_tile_all_rows_without_gaps_or_overlaps(self):
        for total_rows in (1, 49, 50, 51, 120, 1000):
            for batch_size in (1, 7, 50, 200):
                batches = batch_plan.plan_batches(total_rows, batch_size)
                self.assertEqual(len(batches), math.ceil(total_rows / batch_size))

                expected_start = 1
                for number, batch in enumerate(batches, start=1):
                    self.assertEqual(batch['batch_number'], number)
                    self.assertEqual(batch['start_row'], expected_start)
                    self.assertLessEqual(batch['end_row'] - batch['start_row'] + 1, batch_size)
                    expected_start = batch['end_row'] + 1
                self.assertEqual(batches[-1]['end_row'], total_rows)

    def test_120_rows_in_batches_of_50(self):
        batches = batch_plan.plan_batches(120, 50)
        self.assertEqual([(b['start_row'], b['end_row']) for b in batches], [(1, 50), (51, 100), (101, 120)])
        self.assertTrue(all(b['status'] == batch_plan.PENDING for b in batches))
        self.assertTrue(all(b['elements_created'] == [] and b['retry_count'] == 0 for b in batches))

    def test_zero_rows_gives_no_batches(self):
        self.assertEqual(batch_plan.plan_batches(0, 50), [])

    def test_invalid_batch_size_is_rejected(self):
        with self.assertRaises(ValueError):
            batch_plan.plan_batches(10, 0)


class TestSummarize(unittest.TestCase):
    def setUp(self):
        self.batches = batch_plan.plan_batches(120, 50)
        self.batches[0].update(status=batch_plan.SUCCESS, elements_created=list(range(50)),
                               jobs_created=list(range(350)), duplicates_skipped=0)
        self.batches[1].update(status=batch_plan.FAILED, elements_created=[], error_message='boom')
        self.batches[2].update(status=batch_plan.SUCCESS, elements_created=list(range(18)), jobs_created=[],
                               duplicates_skipped=2, row_errors=[{'row': 101, 'message': 'Row 101: bad'}])

    def test_only_successful_batches_contribute_counts(self):
        summary = batch_plan.summarize(self.batches)
        self.assertEqual(summary, {
            'successful_batches': 2,
            'failed_batches': 1,
            'pending_batches': 0,
            'total_elements_created': 68,
            'total_jobs_created': 350,
            'duplicates_skipped': 2,
            'row_errors': 1,
        })

    def test_recomputation_is_idempotent(self):
        first = batch_plan.summarize(self.batches)
        second = batch_plan.summarize(self.batches)
        self.assertEqual(first, second)

    def test_failed_batch_with_leftover_ids_is_not_counted(self):
        self.batches[1]['elements_created'] = [999]
        self.assertEqual(batch_plan.summarize(self.batches)['total_elements_created'], 68)


class TestDeriveStatus(unittest.TestCase):
    def _batches(self, *statuses):
        batches = batch_plan.plan_batches(len(statuses), 1)
        for batch, status in zip(batches, statuses):
            batch['status'] = status
        return batches

    def test_all_success_is_completed(self):
        self.assertEqual(batch_plan.derive_status(self._batches('success', 'success')), batch_plan.COMPLETED)

    def test_mixed_finished_is_partial_success(self):
        self.assertEqual(batch_plan.derive_status(self._batches('success', 'failed')), batch_plan.PARTIAL_SUCCESS)

    def test_all_failed_is_failed(self):
        self.assertEqual(batch_plan.derive_status(self._batches('failed', 'failed')), batch_plan.SESSION_FAILED)

    def test_unfinished_batches_keep_session_in_progress(self):
        for statuses in (('success', 'pending'), ('failed', 'processing'), ('pending', 'pending')):
            self.assertEqual(batch_plan.derive_status(self._batches(*statuses)), batch_plan.IN_PROGRESS)


if __name__ == '__main__':
    unittest.main()
