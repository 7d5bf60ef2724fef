import json
import logging
import threading

from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_LABEL = 'Other'


# Ordered job steps per workflow name. The catalog is data so that new
# workflows only require editing the JSON file:
#   {"<workflow>": {"label": "<fire proofing type>", "steps": ["<title>", ...]}, ...}
class WorkflowCatalog:
    _cache = {}
    _lock = threading.Lock()

    def __init__(self, workflows=None):
        self.workflows: dict = {}
        if workflows:
            self.from_json_object(workflows)

    def from_json_object(self, workflows):
        if not isinstance(workflows, dict):
            raise ValueError("Workflow catalog must be a dictionary.")
        parsed = {}
        for name, entry in workflows.items():
            if isinstance(entry, list):
                entry = {'steps': entry}
            steps = entry.get('steps')
            if not isinstance(steps, list) or not all(isinstance(s, str) and s for s in steps):
                raise ValueError(f"Workflow '{name}' must define a list of step titles.")
            parsed[name] = {'label': entry.get('label', DEFAULT_LABEL), 'steps': list(steps)}
        self.workflows = parsed

    def to_json_object(self):
        return {name: {'label': entry['label'], 'steps': list(entry['steps'])}
                for name, entry in self.workflows.items()}

    @staticmethod
    def from_json_string(json_catalog):
        catalog = WorkflowCatalog()
        catalog.from_json_object(json.loads(json_catalog))
        return catalog

    @staticmethod
    def load(path=None):
        """
        Reads the catalog file once per path and shares it between callers.

        Args:
            path (str): The JSON catalog to read. Defaults to settings.WORKFLOW_CATALOG_PATH.
        """
        path = str(path or settings.WORKFLOW_CATALOG_PATH)
        with WorkflowCatalog._lock:
            catalog = WorkflowCatalog._cache.get(path)
            if catalog is None:
                with open(path, 'r', encoding='utf-8') as catalog_file:
                    catalog = WorkflowCatalog.from_json_string(catalog_file.read())
                logger.info("Loaded %d workflows from %s", len(catalog.workflows), path)
                WorkflowCatalog._cache[path] = catalog
            return catalog

    @staticmethod
    def clear_cache():
        with WorkflowCatalog._lock:
            WorkflowCatalog._cache.clear()

    def names(self):
        return list(self.workflows.keys())

    def is_valid(self, workflow):
        return bool(workflow) and workflow in self.workflows

    def steps(self, workflow):
        entry = self.workflows.get(workflow)
        return list(entry['steps']) if entry else []

    def label(self, workflow):
        entry = self.workflows.get(workflow)
        return entry['label'] if entry else DEFAULT_LABEL
