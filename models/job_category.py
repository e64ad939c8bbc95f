"""Job categories and the document types each one requires."""

from . import db


class JobCategory(db.Model):
    """A health card category (e.g. food handler, non-food worker)."""

    __tablename__ = "job_categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    require_orientation = db.Column(
        db.Boolean, nullable=False, default=False, server_default=db.false()
    )

    requirements = db.relationship(
        "JobCategoryDocument",
        back_populates="job_category",
        order_by="JobCategoryDocument.id",
        cascade="all, delete-orphan",
    )

    def required_document_types(self) -> list["DocumentType"]:
        """Return required document types in requirement order."""

        return [item.document_type for item in self.requirements if item.is_required]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "require_orientation": self.require_orientation,
        }


class DocumentType(db.Model):
    """A named artifact an applicant can upload (valid ID, chest X-ray, ...)."""

    __tablename__ = "document_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "description": self.description}


class JobCategoryDocument(db.Model):
    """Junction between a job category and a document type."""

    __tablename__ = "job_category_documents"
    __table_args__ = (
        db.UniqueConstraint(
            "job_category_id", "document_type_id", name="uq_job_category_document"
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    job_category_id = db.Column(
        db.Integer, db.ForeignKey("job_categories.id"), nullable=False, index=True
    )
    document_type_id = db.Column(
        db.Integer, db.ForeignKey("document_types.id"), nullable=False
    )
    is_required = db.Column(db.Boolean, nullable=False, default=True)

    job_category = db.relationship("JobCategory", back_populates="requirements")
    document_type = db.relationship("DocumentType")
