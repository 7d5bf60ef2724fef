import json
import os
import tempfile
import unittest

from django.test import SimpleTestCase

from excel_import.utils.workflow_catalog import DEFAULT_LABEL, WorkflowCatalog


class TestWorkflowCatalog(unittest.TestCase):
    def test_round_trips_through_json(self):
        catalog = WorkflowCatalog.from_json_string(json.dumps({
            'cement_fire_proofing': {'label': 'Cement', 'steps': ['Surface Preparation', 'WIR']},
            'custom': ['Inspect'],
        }))
        self.assertEqual(catalog.names(), ['cement_fire_proofing', 'custom'])
        self.assertEqual(catalog.steps('custom'), ['Inspect'])
        self.assertEqual(catalog.label('custom'), DEFAULT_LABEL)
        self.assertEqual(WorkflowCatalog(catalog.to_json_object()).to_json_object(), catalog.to_json_object())

    def test_unknown_workflow(self):
        catalog = WorkflowCatalog({'a': ['one']})
        self.assertFalse(catalog.is_valid('b'))
        self.assertFalse(catalog.is_valid(None))
        self.assertEqual(catalog.steps('b'), [])
        self.assertEqual(catalog.label('b'), DEFAULT_LABEL)

    def test_rejects_workflow_without_steps(self):
        with self.assertRaises(ValueError):
            WorkflowCatalog({'a': {'label': 'A'}})
        with self.assertRaises(ValueError):
            WorkflowCatalog(['not', 'a', 'dict'])


class TestWorkflowCatalogFile(SimpleTestCase):
    def tearDown(self):
        WorkflowCatalog.clear_cache()

    def test_shipped_catalog(self):
        catalog = WorkflowCatalog.load()
        self.assertEqual(set(catalog.names()), {
            'cement_fire_proofing', 'gypsum_fire_proofing', 'intumescent_coatings', 'refinery_fire_proofing'})
        self.assertEqual(catalog.label('intumescent_coatings'), 'Intumescent')
        self.assertEqual(len(catalog.steps('cement_fire_proofing')), 7)

    def test_load_reads_each_path_once(self):
        with tempfile.TemporaryDirectory() as directory:
            path = os.path.join(directory, 'workflows.json')
            with open(path, 'w', encoding='utf-8') as f:
                json.dump({'only': ['Step']}, f)
            first = WorkflowCatalog.load(path)
            os.remove(path)
            self.assertIs(WorkflowCatalog.load(path), first)


if __name__ == '__main__':
    unittest.main()
