import os
import shutil
import tempfile

import pandas as pd
from django.contrib.auth.models import User
from django.core.cache import cache
from django.test import override_settings

from excel_import.models import Project, SubProject

HEADERS = ['Sl No', 'Structure Number', 'Drawing No', 'Level', 'Member Type', 'GridNo', 'Part Mark No',
           'Section Sizes', 'Length in (mm)', 'Qty', 'Surface Area in Sqm', 'Fire Proofing Workflow']


def make_row(index, workflow='cement_fire_proofing', structure_number=None):
    return {
        'Sl No': str(index),
        'Structure Number': f"S-{index}" if structure_number is None else structure_number,
        'Drawing No': 'DWG-100',
        'Level': 'L1',
        'Member Type': 'Beam',
        'GridNo': f"A{index}",
        'Part Mark No': f"PM-{index}",
        'Section Sizes': 'ISMB 300',
        'Length in (mm)': '6000',
        'Qty': '2',
        'Surface Area in Sqm': '4.5',
        'Fire Proofing Workflow': workflow,
    }


def make_rows(count, workflow='cement_fire_proofing'):
    return [make_row(i, workflow=workflow) for i in range(1, count + 1)]


def write_csv(rows, directory, file_name='elements.csv'):
    path = os.path.join(directory, file_name)
    pd.DataFrame(rows, columns=HEADERS).to_csv(path, index=False)
    return path


def create_user(username='engineer', is_staff=False):
    return User.objects.create_user(username, f"{username}@example.com", 'testpassword', is_staff=is_staff)


def create_project(title='Refinery Expansion', location='Jamnagar'):
    return Project.objects.create(title=title, location=location)


def create_sub_project(project, name='Block A'):
    return SubProject.objects.create(project=project, name=name)


class UploadRootMixin:
    """Points UPLOAD_ROOT at a temporary directory and starts each test with an empty cache."""

    def setUp(self):
        super().setUp()
        cache.clear()
        self.upload_root = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.upload_root, True)
        upload_settings = override_settings(UPLOAD_ROOT=self.upload_root)
        upload_settings.enable()
        self.addCleanup(upload_settings.disable)
