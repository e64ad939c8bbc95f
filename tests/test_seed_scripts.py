"""Reference data and admin seed scripts."""

from __future__ import annotations

import sys

from models.job_category import JobCategory, JobCategoryDocument
from models.user import User
from scripts import seed_admin, seed_job_categories


def test_seed_job_categories_is_idempotent(app, monkeypatch, capsys):
    monkeypatch.setattr(seed_job_categories, "create_app", lambda: app)

    seed_job_categories.main()
    first_output = capsys.readouterr().out
    seed_job_categories.main()
    second_output = capsys.readouterr().out

    assert "and 21 new requirement links." in first_output
    assert "and 0 new requirement links." in second_output
    with app.app_context():
        food = JobCategory.query.filter_by(name="Food Category").one()
        assert food.require_orientation is True
        assert [item.name for item in food.required_document_types()][:3] == [
            "Valid Government ID",
            "2x2 ID Picture",
            "Chest X-ray",
        ]
        assert JobCategoryDocument.query.count() == 21


def test_seed_admin_scopes_categories(app, workflow, monkeypatch, capsys):
    monkeypatch.setattr(seed_admin, "create_app", lambda: app)
    monkeypatch.setattr(
        sys, "argv", ["seed_admin.py", "--external-id", "ops", "--category", "Food Handler"]
    )

    seed_admin.main()

    assert "Admin user created: ops (Food Handler)" in capsys.readouterr().out
    with app.app_context():
        admin = User.query.filter_by(external_id="ops").one()
        assert admin.role == "admin"
        assert admin.managed_categories == [workflow.food]
