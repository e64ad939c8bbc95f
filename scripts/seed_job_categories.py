"""Seed job categories, document types and category requirements."""

from app import create_app
from models import db
from models.job_category import DocumentType, JobCategory, JobCategoryDocument

CATEGORIES = [
    {"name": "Food Category", "require_orientation": True},
    {"name": "Non-Food Category", "require_orientation": False},
    {"name": "Skin-to-Skin Category", "require_orientation": False},
]

DOCUMENT_TYPES = [
    ("Valid Government ID", "Any valid government-issued ID"),
    ("2x2 ID Picture", "Recent colored 2x2 ID picture"),
    ("Chest X-ray", "Recent chest X-ray result"),
    ("Urinalysis", "Complete urinalysis test"),
    ("Stool Examination", "Stool examination result"),
    ("Cedula", "Community Tax Certificate"),
    ("Drug Test", "Drug test result (for security guards)"),
    ("Neuropsychiatric Test", "Neuropsychiatric evaluation (for security guards)"),
    ("Hepatitis B Antibody Test", "Hepatitis B surface antibody test result"),
]

_BASE_REQUIREMENTS = [
    ("Valid Government ID", True),
    ("2x2 ID Picture", True),
    ("Chest X-ray", True),
    ("Urinalysis", True),
    ("Stool Examination", True),
    ("Cedula", True),
]

REQUIREMENTS = {
    "Food Category": _BASE_REQUIREMENTS,
    "Non-Food Category": _BASE_REQUIREMENTS
    + [("Drug Test", False), ("Neuropsychiatric Test", False)],
    "Skin-to-Skin Category": _BASE_REQUIREMENTS + [("Hepatitis B Antibody Test", False)],
}


def get_or_create_category(name: str, require_orientation: bool) -> JobCategory:
    category = JobCategory.query.filter_by(name=name).first()
    if category is None:
        category = JobCategory(name=name, require_orientation=require_orientation)
        db.session.add(category)
    return category


def get_or_create_document_type(name: str, description: str) -> DocumentType:
    document_type = DocumentType.query.filter_by(name=name).first()
    if document_type is None:
        document_type = DocumentType(name=name, description=description)
        db.session.add(document_type)
    return document_type


def main() -> None:
    app = create_app()
    with app.app_context():
        categories = {
            item["name"]: get_or_create_category(item["name"], item["require_orientation"])
            for item in CATEGORIES
        }
        document_types = {
            name: get_or_create_document_type(name, description)
            for name, description in DOCUMENT_TYPES
        }
        db.session.flush()

        linked = 0
        for category_name, requirements in REQUIREMENTS.items():
            category = categories[category_name]
            existing = {item.document_type_id for item in category.requirements}
            for document_name, is_required in requirements:
                document_type = document_types[document_name]
                if document_type.id in existing:
                    continue
                db.session.add(
                    JobCategoryDocument(
                        job_category=category,
                        document_type=document_type,
                        is_required=is_required,
                    )
                )
                linked += 1

        db.session.commit()
        print(
            f"Seeded {len(categories)} job categories, {len(document_types)} document types "
            f"and {linked} new requirement links."
        )


if __name__ == "__main__":
    main()
