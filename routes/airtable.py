from flask import Blueprint, jsonify

from services.registry import get_services

airtable_bp = Blueprint("airtable", __name__, url_prefix="/airtable")

REQUIRED_FIELDS = [
    {"name": "Payment Intent ID", "type": "Single line text"},
    {"name": "Customer Email", "type": "Email"},
    {"name": "Amount", "type": "Currency"},
    {"name": "Currency", "type": "Single line text"},
    {"name": "Failure Code", "type": "Single line text"},
    {"name": "Failure Message", "type": "Long text"},
    {"name": "Failed At", "type": "Date and time"},
    {"name": "Customer ID", "type": "Single line text"},
    {"name": "Status", "type": "Single select", "options": ["Failed", "Notified", "Resolved"]},
]


@airtable_bp.route("/setup", methods=["GET"])
def airtable_setup():
    settings = get_services().settings
    table_name = settings.airtable_table_name

    return jsonify({
        "message": f'Create a table named "{table_name}" in your Airtable base',
        "baseId": settings.airtable_base_id,
        "tableName": table_name,
        "requiredFields": REQUIRED_FIELDS,
        "instructions": [
            "1. Go to your base in Airtable",
            f'2. Create a new table called "{table_name}"',
            "3. Add the fields listed above with the specified types",
            "4. Test the agent with POST /test endpoint",
        ],
    })
