from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship

Base = declarative_base()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False)

    profile: Mapped["Profile"] = relationship(
        "Profile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    subscription: Mapped["Subscription"] = relationship(
        "Subscription", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    workouts: Mapped[list["WorkoutSession"]] = relationship(
        "WorkoutSession", back_populates="user", cascade="all, delete-orphan"
    )
    metrics: Mapped[list["HealthMetric"]] = relationship(
        "HealthMetric", back_populates="user", cascade="all, delete-orphan"
    )
    meals: Mapped[list["MealEntry"]] = relationship(
        "MealEntry", back_populates="user", cascade="all, delete-orphan"
    )
    stacks: Mapped[list["SupplementStack"]] = relationship(
        "SupplementStack", back_populates="user", cascade="all, delete-orphan"
    )
    supplements: Mapped[list["UserSupplement"]] = relationship(
        "UserSupplement", back_populates="user", cascade="all, delete-orphan"
    )
    cart_items: Mapped[list["CartItem"]] = relationship(
        "CartItem", back_populates="user", cascade="all, delete-orphan"
    )
    chat_sessions: Mapped[list["ChatSession"]] = relationship(
        "ChatSession", back_populates="user", cascade="all, delete-orphan"
    )


class Profile(Base):
    __tablename__ = "profiles"
    __table_args__ = (UniqueConstraint("user_id", name="uq_profiles_user_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    first_name: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    mobile: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    height_cm: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    weight_kg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    activity_level: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    exercise_frequency: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    exercise_types_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    health_goals_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    health_concerns_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fitness_goals_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    sleep_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sleep_quality: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    stress_level: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    work_schedule: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    diet_preference: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    allergies_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    dietary_restrictions_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meal_preferences_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    medical_conditions_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    current_medications_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    doctor_clearance: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    preferences_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    onboarding_step: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    onboarding_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    user: Mapped[User] = relationship("User", back_populates="profile")


class WorkoutSession(Base):
    __tablename__ = "workout_sessions"
    __table_args__ = (Index("ix_workout_sessions_user_ts", "user_id", "timestamp"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    workout_type: Mapped[str] = mapped_column(String(64), nullable=False)
    duration_min: Mapped[float] = mapped_column(Float, nullable=False)
    calories_burned: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False)

    user: Mapped[User] = relationship("User", back_populates="workouts")
    sets: Mapped[list["ExerciseSet"]] = relationship(
        "ExerciseSet", back_populates="workout", cascade="all, delete-orphan", order_by="ExerciseSet.id"
    )


class ExerciseSet(Base):
    __tablename__ = "exercise_sets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    workout_id: Mapped[int] = mapped_column(
        ForeignKey("workout_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    exercise_name: Mapped[str] = mapped_column(String(120), nullable=False)
    sets: Mapped[int] = mapped_column(Integer, nullable=False)
    reps: Mapped[int] = mapped_column(Integer, nullable=False)
    weight: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    duration_sec: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    workout: Mapped[WorkoutSession] = relationship("WorkoutSession", back_populates="sets")


class HealthMetric(Base):
    __tablename__ = "health_metrics"
    __table_args__ = (Index("ix_health_metrics_user_type_taken", "user_id", "metric_type", "taken_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    metric_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    value_num: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(16), nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default="manual")
    taken_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False)

    user: Mapped[User] = relationship("User", back_populates="metrics")


class MealEntry(Base):
    __tablename__ = "meal_entries"
    __table_args__ = (Index("ix_meal_entries_user_eaten", "user_id", "eaten_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    meal_type: Mapped[str] = mapped_column(String(16), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    calories: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    protein_g: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    carbs_g: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    fat_g: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    eaten_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False)

    user: Mapped[User] = relationship("User", back_populates="meals")


class SupplementStack(Base):
    __tablename__ = "supplement_stacks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    goal: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    supplement_ids_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_favorite: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False)

    user: Mapped[User] = relationship("User", back_populates="stacks")


class UserSupplement(Base):
    __tablename__ = "user_supplements"
    __table_args__ = (UniqueConstraint("user_id", "supplement_id", name="uq_user_supplements_user_supplement"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    supplement_id: Mapped[str] = mapped_column(String(80), nullable=False)
    dosage: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    timing_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    purpose: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    subscription_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False)

    user: Mapped[User] = relationship("User", back_populates="supplements")


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (UniqueConstraint("user_id", "supplement_id", name="uq_cart_items_user_supplement"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    supplement_id: Mapped[str] = mapped_column(String(80), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    subscription: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False)

    user: Mapped[User] = relationship("User", back_populates="cart_items")


class ChatSession(Base):
    __tablename__ = "chat_sessions"
    __table_args__ = (Index("ix_chat_sessions_user_last", "user_id", "last_message_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(180), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False)
    last_message_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False, index=True)

    user: Mapped[User] = relationship("User", back_populates="chat_sessions")
    turns: Mapped[list["ChatHistory"]] = relationship(
        "ChatHistory", back_populates="session", cascade="all, delete-orphan", order_by="ChatHistory.id"
    )


class ChatHistory(Base):
    __tablename__ = "chat_history"
    __table_args__ = (Index("ix_chat_history_user_created", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id: Mapped[int] = mapped_column(
        ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    response: Mapped[str] = mapped_column(Text, nullable=False)
    context_enhanced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False, index=True)

    session: Mapped[ChatSession] = relationship("ChatSession", back_populates="turns")


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (UniqueConstraint("user_id", name="uq_subscriptions_user_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_tier: Mapped[str] = mapped_column(String(32), nullable=False, default="free")
    billing_cycle: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="inactive")
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    current_period_end: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    user: Mapped[User] = relationship("User", back_populates="subscription")


class ModelUsageStat(Base):
    __tablename__ = "model_usage_stats"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", "model", name="uq_model_usage_user_provider_model"),
        Index("ix_model_usage_user_last_used", "user_id", "last_used_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    model: Mapped[str] = mapped_column(String(128), nullable=False)
    request_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    prompt_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completion_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_used_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, nullable=False)
