"""Seed an administrator user keyed by the identity provider subject."""

import argparse

from app import create_app
from models import db
from models.job_category import JobCategory
from models.user import User

ADMIN_EXTERNAL_ID = "admin"
ADMIN_EMAIL = "admin@example.com"


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--external-id", default=ADMIN_EXTERNAL_ID)
    parser.add_argument("--email", default=ADMIN_EMAIL)
    parser.add_argument(
        "--category",
        action="append",
        default=[],
        help="Job category name to manage; repeat for several. Omit for a super admin.",
    )
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        managed = []
        for name in args.category:
            category = JobCategory.query.filter_by(name=name).first()
            if category is None:
                raise SystemExit(f"Unknown job category: {name}")
            managed.append(category.id)

        admin = User.query.filter_by(external_id=args.external_id).first()
        if admin is None:
            admin = User(
                external_id=args.external_id,
                email=args.email,
                role="admin",
                managed_categories=managed,
            )
            db.session.add(admin)
            action = "created"
        else:
            admin.role = "admin"
            admin.managed_categories = managed
            action = "updated"
        db.session.commit()
        scope = ", ".join(args.category) or "all categories"
        print(f"Admin user {action}: {args.external_id} ({scope})")


if __name__ == "__main__":
    main()
