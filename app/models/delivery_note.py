"""
Modello DeliveryNote (tabella: delivery_notes).

Albarán / DDT emesso da un utente a un cliente per un progetto.

Ciclo di vita:
- creato con pending=True (bozza, modificabile);
- firmato una sola volta: sign valorizzato e pending=False insieme;
- pdf_url valorizzato solo dopo l'ancoraggio del PDF firmato;
- deleted_at valorizzato = archiviato (soft delete), reversibile con restore.
"""

from datetime import datetime

from app.extensions import db

FORMAT_HOURS = "hours"
FORMAT_MATERIAL = "material"
FORMATS = (FORMAT_HOURS, FORMAT_MATERIAL)


class DeliveryNote(db.Model):
    __tablename__ = "delivery_notes"
    __table_args__ = (
        # firma presente solo se firmato, PDF solo se firmato
        db.CheckConstraint(
            "(sign IS NULL) OR (pending = 0)", name="ck_delivery_notes_sign_not_pending"
        ),
        db.CheckConstraint(
            "(pdf_url IS NULL) OR (sign IS NOT NULL)", name="ck_delivery_notes_pdf_requires_sign"
        ),
    )

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Contenuto
    # Valori: 'hours', 'material'
    format = db.Column(db.String(16), nullable=False, default=FORMAT_HOURS)
    hours = db.Column(db.Numeric(8, 2), nullable=True)
    description = db.Column(db.Text, nullable=True)

    # Firma
    pending = db.Column(db.Boolean, nullable=False, default=True, index=True)
    sign = db.Column(db.String(512), nullable=True)
    pdf_url = db.Column(db.String(512), nullable=True)

    # Archiviazione (soft delete)
    deleted_at = db.Column(db.DateTime, nullable=True, index=True)

    # Timestamps
    created_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, index=True
    )
    updated_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships (join in sola lettura)
    user = db.relationship("User", backref="delivery_notes")
    client = db.relationship("Client", backref="delivery_notes")
    project = db.relationship("Project", backref="delivery_notes")

    @property
    def is_archived(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return (
            f"<DeliveryNote id={self.id} format={self.format!r} "
            f"pending={self.pending} archived={self.is_archived}>"
        )
