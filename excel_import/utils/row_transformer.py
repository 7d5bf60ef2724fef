import re

from excel_import.utils.workflow_catalog import WorkflowCatalog

# Spreadsheet header aliases mapped to element fields. The first alias that
# holds a non-blank value wins.
COLUMN_ALIASES = {
    'serial_no': ('Sl No', 'Serial No', 'S.No'),
    'structure_number': ('Structure Number', 'Structure No'),
    'drawing_no': ('Drawing No', 'Drawing Number'),
    'level': ('Level', 'Floor'),
    'member_type': ('Member Type', 'Type'),
    'grid_no': ('GridNo', 'Grid', 'Grid No', 'Location'),
    'part_mark_no': ('Part Mark No', 'Part Mark', 'Mark No'),
    'section_sizes': ('Section Sizes', 'Section'),
    'length_mm': ('Length in (mm)', 'Length'),
    'qty': ('Qty', 'Quantity'),
    'section_depth_mm': ('Section Depth (mm)D', 'Depth'),
    'flange_width_mm': ('Flange Width (mm) B', 'Width'),
    'web_thickness_mm': ('Thickness (mm) t Of Web', 'Web Thickness'),
    'flange_thickness_mm': ('Thickness (mm) TOf Flange', 'Flange Thickness'),
    'fireproofing_thickness': ('Thickness of Fireproofing', 'Fireproofing'),
    'surface_area_sqm': ('Surface Area in Sqm', 'Area'),
    'fire_proofing_workflow': ('Fire Proofing Workflow',),
}

NUMERIC_FIELDS = (
    'length_mm', 'qty', 'section_depth_mm', 'flange_width_mm', 'web_thickness_mm',
    'flange_thickness_mm', 'fireproofing_thickness', 'surface_area_sqm',
)

TEXT_FIELDS = (
    'serial_no', 'structure_number', 'drawing_no', 'level', 'member_type',
    'grid_no', 'part_mark_no', 'section_sizes',
)

KEY_FIELDS = ('structure_number', 'drawing_no', 'level', 'member_type', 'grid_no', 'part_mark_no')


class ValidatedRow:
    """A row that passed validation, ready to become a StructuralElement."""

    def __init__(self, row_number, fields):
        self.row_number = row_number
        self.fields = fields

    @property
    def workflow(self):
        return self.fields.get('fire_proofing_workflow')

    def business_key(self):
        return {name: self.fields[name] for name in KEY_FIELDS}

    def __repr__(self):
        return f"ValidatedRow({self.row_number}, {self.fields.get('structure_number')!r})"


class RowError:
    """A row that was rejected, with the 1-based data row number and reason."""

    def __init__(self, row_number, message):
        self.row_number = row_number
        self.message = message

    def to_json_object(self):
        return {'row': self.row_number, 'message': self.message}

    def __repr__(self):
        return f"RowError({self.row_number}, {self.message!r})"

    def __eq__(self, other):
        return isinstance(other, RowError) and (self.row_number, self.message) == (other.row_number, other.message)


def _lookup(row, aliases):
    for alias in aliases:
        value = row.get(alias)
        if value is None:
            continue
        value = str(value).strip()
        if value != '':
            return value
    return ''


def to_number(value):
    # Blank and non-numeric cells become 0, matching the spreadsheet import contract
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number or number in (float('inf'), float('-inf')):
        return 0.0
    return number


def normalize_workflow(value):
    return re.sub(r'\s+', '_', str(value).strip().lower())


class RowTransformer:
    """
    Maps raw spreadsheet rows to element payloads for one project (and
    optional sub-project) on behalf of one user. Has no side effects.
    """

    def __init__(self, project, user, sub_project=None, catalog: WorkflowCatalog = None):
        self.project = project
        self.user = user
        self.sub_project = sub_project
        self.catalog = catalog or WorkflowCatalog.load()

    def transform(self, row, row_number):
        """
        Args:
            row (dict): The raw row keyed by spreadsheet header.
            row_number (int): The 1-based data row number used in error messages.

        Returns:
            ValidatedRow or RowError
        """
        raw = {field: _lookup(row, aliases) for field, aliases in COLUMN_ALIASES.items()}

        if not raw['structure_number']:
            return RowError(row_number, f"Row {row_number}: Missing Structure Number")

        workflow = None
        if raw['fire_proofing_workflow']:
            workflow = normalize_workflow(raw['fire_proofing_workflow'])
            if not self.catalog.is_valid(workflow):
                return RowError(row_number, (
                    f"Row {row_number}: Invalid Fire Proofing Workflow: {raw['fire_proofing_workflow']}. "
                    f"Valid options: {', '.join(self.catalog.names())}"))

        fields = {name: raw[name] for name in TEXT_FIELDS}
        fields.update({name: to_number(raw[name]) for name in NUMERIC_FIELDS})
        fields.update({
            'fire_proofing_workflow': workflow,
            'project': self.project,
            'sub_project': self.sub_project,
            'project_name': self.project.title or 'Untitled Project',
            'site_location': self.project.location or 'Not specified',
            'created_by': self.user,
            'status': 'active',
        })
        return ValidatedRow(row_number, fields)

    def transform_all(self, rows):
        """Transforms every row; returns (validated_rows, row_errors) in file order."""
        validated, errors = [], []
        for index, row in enumerate(rows, start=1):
            result = self.transform(row, index)
            if isinstance(result, RowError):
                errors.append(result)
            else:
                validated.append(result)
        return validated, errors
