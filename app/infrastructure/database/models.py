"""
Modelos de base de datos (ORM).

Tablas destino del sync (reservations, tours, payment_methods,
reservation_expenses, tour_expenses), clientes vinculados a reservas
(customers) y tablas de estado del sync (sync_history,
sync_column_mappings).
"""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from app.infrastructure.database.session import Base
from app.shared.constants.sync_constants import RecordSource


class SyncTargetMixin:
    """Columnas tecnicas comunes a toda tabla destino del sync."""

    id = Column(Integer, primary_key=True, index=True)
    # sync | manual | manual-override
    source = Column(String(20), nullable=False, default=RecordSource.SYNC.value, index=True)
    modified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class CustomerModel(Base):
    """Clientes. El sync de reservas los busca o crea por email."""

    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(50), nullable=True)
    language = Column(String(10), nullable=False, default="ko")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Customer(id={self.id}, email={self.email})>"


class ReservationModel(SyncTargetMixin, Base):
    """Reservas de tours."""

    __tablename__ = "reservations"

    reservation_number = Column(String(100), nullable=False, unique=True, index=True)
    customer_name = Column(String(255), nullable=True)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    adults = Column(Integer, default=0)
    child = Column(Integer, default=0)
    infant = Column(Integer, default=0)
    total_people = Column(Integer, nullable=True)
    tour_date = Column(Date, nullable=True, index=True)
    tour_time = Column(Time, nullable=True)
    product_id = Column(String(100), nullable=True)
    choice = Column(String(100), nullable=True)
    tour_id = Column(String(100), nullable=True, index=True)
    pickup_hotel = Column(String(255), nullable=True)
    pickup_time = Column(Time, nullable=True)
    channel = Column(String(100), nullable=True)
    channel_rn = Column(String(100), nullable=True)
    added_by = Column(String(255), nullable=True)
    status = Column(String(50), default="pending")
    event_note = Column(Text, nullable=True)
    is_private_tour = Column(Boolean, default=False)
    selected_options = Column(JSON, nullable=True)
    # Cliente vinculado por email durante el sync
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)

    def __repr__(self):
        return f"<Reservation(id={self.id}, number={self.reservation_number}, status={self.status})>"


class TourModel(SyncTargetMixin, Base):
    """Tours programados."""

    __tablename__ = "tours"

    tour_number = Column(String(100), nullable=False, unique=True, index=True)
    product_id = Column(String(100), nullable=True)
    tour_date = Column(Date, nullable=True, index=True)
    tour_status = Column(String(50), default="Recruiting")
    tour_guide_id = Column(String(255), nullable=True)
    assistant_id = Column(String(255), nullable=True)
    tour_car_id = Column(String(100), nullable=True)
    is_private_tour = Column(Boolean, default=False)
    reservation_ids = Column(JSON, nullable=True)  # Lista de numeros de reserva

    def __repr__(self):
        return f"<Tour(id={self.id}, number={self.tour_number}, status={self.tour_status})>"


class PaymentMethodModel(SyncTargetMixin, Base):
    """Metodos de pago (tarjetas corporativas, efectivo, etc.)."""

    __tablename__ = "payment_methods"

    method_code = Column(String(100), nullable=False, unique=True, index=True)
    method = Column(String(255), nullable=False)
    method_type = Column(String(20), nullable=True)
    user_email = Column(String(255), nullable=True)
    limit_amount = Column(Numeric(12, 2), default=0)
    status = Column(String(20), default="active")
    card_number_last4 = Column(String(4), nullable=True)
    card_type = Column(String(20), nullable=True)

    def __repr__(self):
        return f"<PaymentMethod(id={self.id}, code={self.method_code}, type={self.method_type})>"


class ReservationExpenseModel(SyncTargetMixin, Base):
    """Gastos asociados a reservas."""

    __tablename__ = "reservation_expenses"

    expense_code = Column(String(100), nullable=False, unique=True, index=True)
    submit_on = Column(DateTime(timezone=True), nullable=True)
    submitted_by = Column(String(255), nullable=True)
    paid_to = Column(String(255), nullable=True)
    paid_for = Column(String(255), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(255), nullable=True)
    note = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    file_path = Column(Text, nullable=True)
    status = Column(String(20), default="pending")
    reservation_id = Column(String(100), nullable=True, index=True)
    event_id = Column(String(100), nullable=True)

    def __repr__(self):
        return f"<ReservationExpense(id={self.id}, code={self.expense_code}, amount={self.amount})>"


class TourExpenseModel(SyncTargetMixin, Base):
    """Gastos asociados a tours. tour_id referencia tours.tour_number."""

    __tablename__ = "tour_expenses"

    expense_code = Column(String(100), nullable=False, unique=True, index=True)
    tour_id = Column(String(100), nullable=True, index=True)
    product_id = Column(String(100), nullable=True)
    tour_date = Column(Date, nullable=False, index=True)
    submit_on = Column(DateTime(timezone=True), nullable=True)
    submitted_by = Column(String(255), nullable=False)
    paid_to = Column(String(255), nullable=True)
    paid_for = Column(String(255), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(255), nullable=True)
    note = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    file_path = Column(Text, nullable=True)
    audited_by = Column(String(255), nullable=True)
    checked_by = Column(String(255), nullable=True)
    checked_on = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), default="pending")

    def __repr__(self):
        return f"<TourExpense(id={self.id}, code={self.expense_code}, tour={self.tour_id}, amount={self.amount})>"


class SyncHistoryModel(Base):
    """
    Ultima sincronizacion exitosa por (tabla, spreadsheet).
    Acota la ventana del modo incremental.
    """

    __tablename__ = "sync_history"
    __table_args__ = (
        UniqueConstraint("target_table", "spreadsheet_id", name="uq_sync_history_table_spreadsheet"),
    )

    id = Column(Integer, primary_key=True, index=True)
    target_table = Column(String(100), nullable=False, index=True)
    spreadsheet_id = Column(String(255), nullable=False)
    last_sync_time = Column(DateTime(timezone=True), nullable=False)
    record_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<SyncHistory(table={self.target_table}, spreadsheet={self.spreadsheet_id}, last={self.last_sync_time})>"


class ColumnMappingModel(Base):
    """Mapeo columna de hoja -> campo confirmado por (hoja, tabla destino)."""

    __tablename__ = "sync_column_mappings"
    __table_args__ = (
        UniqueConstraint("sheet_name", "target_table", name="uq_column_mapping_sheet_table"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sheet_name = Column(String(255), nullable=False)
    target_table = Column(String(100), nullable=False, index=True)
    mapping = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<ColumnMapping(sheet={self.sheet_name}, table={self.target_table})>"
