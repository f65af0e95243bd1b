"""IAM bulk import package.

To use the Flask app:
    from iam_import.flask_app import create_app

To run the import pipeline without Flask:
    from iam_import.core.bulk import BulkImportWorkflow, ImportFormat
"""
# Note: flask_app is not imported here so CLI scripts only need the core
# modules and requests.
