# Defining functions to create tables and talk to the database
import os
import logging
import random
import string
import time
from sqlmodel import SQLModel, create_engine, Session, select, or_, col, func
from sqlalchemy.pool import StaticPool
from typing import Optional, List, Dict, Any, Tuple
from datetime import datetime, timedelta

from fastapi import HTTPException, status

# Import your models
from db_models import (
    User,
    Category,
    Product,
    Address,
    Order,
    OrderItem,
    Review,
    WishlistItem,
    CartItem,
    Testimonial,
    NewsItem,
    SiteSetting,
    OTPCode,
)
from schemas import OrderCreate, OrderUpdate, AddressCreate, ReviewCreate
from config import (
    DATABASE_URL,
    DATABASE_ECHO,
    DATA_DIR,
    DELIVERY_FEE,
    OTP_EXPIRY_MINUTES,
    OTP_MAX_ATTEMPTS,
    OTP_RESEND_COOLDOWN_SECONDS,
    OTP_LENGTH,
)

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------
# Engine Setup
# -----------------------------------------------------------------

connect_args = {}
engine_kwargs = {}

if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

    if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database
        engine_kwargs["poolclass"] = StaticPool
    else:
        os.makedirs(DATA_DIR, exist_ok=True)

engine = create_engine(DATABASE_URL, echo=DATABASE_ECHO, connect_args=connect_args, **engine_kwargs)


# -----------------------------------------------------------------
# Creating Tables
# -----------------------------------------------------------------

def create_db_and_tables():
    SQLModel.metadata.create_all(engine)


def drop_db_and_tables():
    SQLModel.metadata.drop_all(engine)


# -----------------------------------------------------------------
# Shared Helpers
# -----------------------------------------------------------------

def _base36(number: int) -> str:
    digits = string.digits + string.ascii_uppercase
    if number == 0:
        return "0"
    out = ""
    while number:
        number, rem = divmod(number, 36)
        out = digits[rem] + out
    return out


def _random_chars(k: int) -> str:
    return "".join(random.choices(string.digits + string.ascii_uppercase, k=k))


def generate_order_number() -> str:
    return f"ORD-{_base36(int(time.time() * 1000))}-{_random_chars(5)}"


def generate_tracking_number() -> str:
    return f"TRK-{_base36(int(time.time() * 1000))}-{_random_chars(7)}"


def _count(session: Session, statement) -> int:
    return session.exec(select(func.count()).select_from(statement.subquery())).one()


def _paginate(statement, page: int, limit: int):
    return statement.offset((page - 1) * limit).limit(limit)


def _get_or_404(session: Session, model, record_id, label: str):
    record = session.get(model, record_id)
    if not record:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return record


def _touch(record):
    if hasattr(record, "updated_at"):
        record.updated_at = datetime.utcnow()


# -----------------------------------------------------------------
# Generic CRUD (categories, products, testimonials, news items)
# -----------------------------------------------------------------

def get_record(model, record_id: int, label: str):
    with Session(engine) as session:
        return _get_or_404(session, model, record_id, label)


def add_record(model, data: Dict[str, Any]):
    with Session(engine) as session:
        record = model(**data)
        session.add(record)
        session.commit()
        session.refresh(record)
        return record


def update_record(model, record_id: int, data: Dict[str, Any], label: str):
    with Session(engine) as session:
        record = _get_or_404(session, model, record_id, label)
        for key, value in data.items():
            setattr(record, key, value)
        _touch(record)
        session.add(record)
        session.commit()
        session.refresh(record)
        return record


def delete_record(model, record_id: int, label: str):
    with Session(engine) as session:
        record = _get_or_404(session, model, record_id, label)
        session.delete(record)
        session.commit()


# -----------------------------------------------------------------
# User Functions
# -----------------------------------------------------------------

def add_user(email: str, hashed_password: str, name: str, phone: str = None, role: str = "customer", is_verified: bool = False, auth_provider: str = None):
    with Session(engine) as session:
        user = User(
            email=email,
            hashed_password=hashed_password,
            name=name,
            phone=phone,
            role=role,
            is_verified=is_verified,
            auth_provider=auth_provider,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user


def get_user_by_email(email: str) -> Optional[User]:
    with Session(engine) as session:
        statement = select(User).where(User.email == email.lower())
        return session.exec(statement).first()


def get_user_by_id(user_id: int) -> Optional[User]:
    with Session(engine) as session:
        return session.get(User, user_id)


def update_user(user_id: int, data: Dict[str, Any]) -> User:
    with Session(engine) as session:
        user = _get_or_404(session, User, user_id, "User")

        new_email = data.get("email")
        if new_email and new_email.lower() != user.email:
            taken = session.exec(select(User).where(User.email == new_email.lower())).first()
            if taken:
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")
            data["email"] = new_email.lower()

        for key, value in data.items():
            if value is not None:
                setattr(user, key, value)
        _touch(user)

        session.add(user)
        session.commit()
        session.refresh(user)
        return user


def set_user_password(user_id: int, hashed_password: str):
    with Session(engine) as session:
        user = _get_or_404(session, User, user_id, "User")
        user.hashed_password = hashed_password
        _touch(user)
        session.add(user)
        session.commit()


def mark_user_verified(email: str) -> Optional[User]:
    with Session(engine) as session:
        user = session.exec(select(User).where(User.email == email.lower())).first()
        if not user:
            return None
        user.is_verified = True
        _touch(user)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user


def list_users(page: int = 1, limit: int = 20) -> Tuple[List[User], int]:
    with Session(engine) as session:
        statement = select(User)
        total = _count(session, statement)
        users = session.exec(_paginate(statement.order_by(col(User.created_at).desc(), col(User.id).desc()), page, limit)).all()
        return users, total


# -----------------------------------------------------------------
# OTP Functions
# -----------------------------------------------------------------

def generate_otp() -> str:
    return "".join(random.choices(string.digits, k=OTP_LENGTH))


def save_otp(email: str, purpose: str) -> str:
    """Replaces any pending code for this email/purpose and returns the new one."""
    code = generate_otp()
    with Session(engine) as session:
        existing = session.exec(
            select(OTPCode).where((OTPCode.email == email.lower()) & (OTPCode.purpose == purpose))
        ).all()
        for record in existing:
            session.delete(record)

        session.add(OTPCode(
            email=email.lower(),
            code=code,
            purpose=purpose,
            expires_at=datetime.utcnow() + timedelta(minutes=OTP_EXPIRY_MINUTES),
        ))
        session.commit()
    return code


def otp_cooldown_remaining(email: str, purpose: str) -> int:
    """Seconds left before another code may be sent, 0 when allowed."""
    with Session(engine) as session:
        record = session.exec(
            select(OTPCode)
            .where((OTPCode.email == email.lower()) & (OTPCode.purpose == purpose))
            .order_by(col(OTPCode.created_at).desc())
        ).first()
        if not record:
            return 0
        elapsed = (datetime.utcnow() - record.created_at).total_seconds()
        return max(0, int(OTP_RESEND_COOLDOWN_SECONDS - elapsed + 0.999))


def check_otp(email: str, purpose: str, code: str):
    """Raises HTTPException(400) unless the code matches. A matching code is consumed."""
    with Session(engine) as session:
        record = session.exec(
            select(OTPCode).where((OTPCode.email == email.lower()) & (OTPCode.purpose == purpose))
        ).first()

        if not record:
            raise HTTPException(status_code=400, detail="No verification code found. Please request a new code.")

        if record.expires_at < datetime.utcnow():
            session.delete(record)
            session.commit()
            raise HTTPException(status_code=400, detail="Verification code has expired. Please request a new code.")

        if record.attempts >= OTP_MAX_ATTEMPTS:
            session.delete(record)
            session.commit()
            raise HTTPException(status_code=400, detail="Too many failed attempts. Please request a new code.")

        if record.code != code.strip():
            record.attempts += 1
            remaining = OTP_MAX_ATTEMPTS - record.attempts
            session.add(record)
            session.commit()
            plural = "" if remaining == 1 else "s"
            raise HTTPException(status_code=400, detail=f"Invalid code. {remaining} attempt{plural} remaining.")

        session.delete(record)
        session.commit()


# -----------------------------------------------------------------
# Category Functions
# -----------------------------------------------------------------

def list_categories(active: Optional[bool] = None) -> List[Category]:
    with Session(engine) as session:
        statement = select(Category)
        if active is not None:
            statement = statement.where(Category.is_active == active)
        return session.exec(statement.order_by(Category.name)).all()


def list_categories_with_counts() -> List[Dict[str, Any]]:
    with Session(engine) as session:
        statement = (
            select(Category, func.count(Product.id))
            .join(Product, (Product.category_id == Category.id) & (Product.is_active == True), isouter=True)  # noqa: E712
            .where(Category.is_active == True)  # noqa: E712
            .group_by(Category.id)
            .order_by(Category.name)
        )
        results = []
        for category, product_count in session.exec(statement).all():
            entry = category.model_dump()
            entry["product_count"] = product_count
            results.append(entry)
        return results


def delete_category(category_id: int):
    with Session(engine) as session:
        category = _get_or_404(session, Category, category_id, "Category")
        in_use = session.exec(select(Product.id).where(Product.category_id == category_id)).first()
        if in_use:
            raise HTTPException(status_code=400, detail="Category still has products")
        session.delete(category)
        session.commit()


# -----------------------------------------------------------------
# Product Functions
# -----------------------------------------------------------------

def get_all_products(
    category: Optional[int] = None,
    featured: Optional[bool] = None,
    active: Optional[bool] = True,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    search: Optional[str] = None,
    ids: Optional[List[int]] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Product], int]:
    with Session(engine) as session:
        statement = select(Product)

        if category:
            statement = statement.where(Product.category_id == category)
        if featured is not None:
            statement = statement.where(Product.is_featured == featured)
        if active is not None:
            statement = statement.where(Product.is_active == active)
        if min_price is not None:
            statement = statement.where(Product.price >= min_price)
        if max_price is not None:
            statement = statement.where(Product.price <= max_price)
        if search:
            pattern = f"%{search}%"
            statement = statement.where(or_(col(Product.name).ilike(pattern), col(Product.description).ilike(pattern)))
        if ids:
            statement = statement.where(col(Product.id).in_(ids))

        total = _count(session, statement)
        statement = statement.order_by(col(Product.created_at).desc(), col(Product.id).desc())
        return session.exec(_paginate(statement, page, limit)).all(), total


def get_featured_products(limit: int = 8) -> List[Product]:
    with Session(engine) as session:
        statement = (
            select(Product)
            .where((Product.is_featured == True) & (Product.is_active == True))  # noqa: E712
            .order_by(col(Product.created_at).desc(), col(Product.id).desc())
            .limit(limit)
        )
        return session.exec(statement).all()


def add_product(data: Dict[str, Any]) -> Product:
    with Session(engine) as session:
        _get_or_404(session, Category, data["category_id"], "Category")
        product = Product(**data)
        session.add(product)
        session.commit()
        session.refresh(product)
        return product


def update_product(product_id: int, data: Dict[str, Any]) -> Product:
    with Session(engine) as session:
        product = _get_or_404(session, Product, product_id, "Product")
        if data.get("category_id"):
            _get_or_404(session, Category, data["category_id"], "Category")
        for key, value in data.items():
            setattr(product, key, value)
        _touch(product)
        session.add(product)
        session.commit()
        session.refresh(product)
        return product


# -----------------------------------------------------------------
# Cart Functions
# -----------------------------------------------------------------

def get_cart(user_id: int) -> Dict[str, Any]:
    """Returns cart lines joined with product details plus the totals."""
    with Session(engine) as session:
        statement = (
            select(CartItem, Product)
            .join(Product, Product.id == CartItem.product_id)
            .where(CartItem.user_id == user_id)
            .order_by(CartItem.created_at, CartItem.id)
        )
        results = session.exec(statement).all()

        items = []
        for item, product in results:
            items.append({
                "product_id": product.id,
                "name": product.name,
                "price": product.price,
                "image": product.image,
                "unit": product.unit,
                "stock": product.stock,
                "quantity": item.quantity,
                "line_total": round(product.price * item.quantity, 2),
            })

        subtotal = round(sum(entry["line_total"] for entry in items), 2)
        delivery_fee = DELIVERY_FEE if items else 0
        return {
            "items": items,
            "item_count": sum(entry["quantity"] for entry in items),
            "subtotal": subtotal,
            "delivery_fee": delivery_fee,
            "total": round(subtotal + delivery_fee, 2),
        }


def add_item_to_cart(user_id: int, product_id: int, quantity: int):
    with Session(engine) as session:
        product = session.get(Product, product_id)
        if not product or not product.is_active:
            raise HTTPException(status_code=404, detail="Product not found")

        statement = select(CartItem).where((CartItem.user_id == user_id) & (CartItem.product_id == product_id))
        existing_item = session.exec(statement).first()

        current = existing_item.quantity if existing_item else 0
        if current + quantity > product.stock:
            raise HTTPException(status_code=400, detail=f"Cannot add more. Only {product.stock} in stock")

        if existing_item:
            existing_item.quantity += quantity
            session.add(existing_item)
        else:
            session.add(CartItem(user_id=user_id, product_id=product_id, quantity=quantity))
        session.commit()


def update_cart_item(user_id: int, product_id: int, quantity: int):
    with Session(engine) as session:
        statement = select(CartItem).where((CartItem.user_id == user_id) & (CartItem.product_id == product_id))
        item = session.exec(statement).first()
        if not item:
            raise HTTPException(status_code=404, detail="Item not in cart")

        if quantity <= 0:
            session.delete(item)
        else:
            product = session.get(Product, product_id)
            stock = product.stock if product else 0
            item.quantity = min(quantity, stock)
            if item.quantity <= 0:
                session.delete(item)
            else:
                session.add(item)
        session.commit()


def remove_cart_item(user_id: int, product_id: int):
    with Session(engine) as session:
        statement = select(CartItem).where((CartItem.user_id == user_id) & (CartItem.product_id == product_id))
        item = session.exec(statement).first()
        if not item:
            raise HTTPException(status_code=404, detail="Item not in cart")
        session.delete(item)
        session.commit()


def clear_cart(user_id: int):
    with Session(engine) as session:
        items = session.exec(select(CartItem).where(CartItem.user_id == user_id)).all()
        for item in items:
            session.delete(item)
        session.commit()


# -----------------------------------------------------------------
# Address Functions
# -----------------------------------------------------------------

def _clear_default_addresses(session: Session, user_id: int, keep_id: Optional[int] = None):
    others = session.exec(
        select(Address).where((Address.user_id == user_id) & (Address.is_default == True))  # noqa: E712
    ).all()
    for other in others:
        if other.id != keep_id:
            other.is_default = False
            session.add(other)


def _new_address(session: Session, user_id: int, data: AddressCreate) -> Address:
    has_any = session.exec(select(Address.id).where(Address.user_id == user_id)).first()
    make_default = bool(data.is_default) or not has_any

    if make_default:
        _clear_default_addresses(session, user_id)

    address = Address(**data.model_dump(exclude={"is_default"}), user_id=user_id, is_default=make_default)
    session.add(address)
    session.flush()
    return address


def list_addresses(user_id: int) -> List[Address]:
    with Session(engine) as session:
        statement = (
            select(Address)
            .where(Address.user_id == user_id)
            .order_by(col(Address.is_default).desc(), col(Address.created_at).desc(), col(Address.id).desc())
        )
        return session.exec(statement).all()


def add_address(user_id: int, data: AddressCreate) -> Address:
    with Session(engine) as session:
        address = _new_address(session, user_id, data)
        session.commit()
        session.refresh(address)
        return address


def _owned_address(session: Session, address_id: int, user_id: int) -> Address:
    address = _get_or_404(session, Address, address_id, "Address")
    if address.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to access this address")
    return address


def update_address(address_id: int, user_id: int, data: Dict[str, Any]) -> Address:
    with Session(engine) as session:
        address = _owned_address(session, address_id, user_id)

        if data.get("is_default"):
            _clear_default_addresses(session, user_id, keep_id=address.id)

        for key, value in data.items():
            if value is not None:
                setattr(address, key, value)
        _touch(address)

        session.add(address)
        session.commit()
        session.refresh(address)
        return address


def delete_address(address_id: int, user_id: int):
    with Session(engine) as session:
        address = _owned_address(session, address_id, user_id)
        session.delete(address)
        session.commit()


# -----------------------------------------------------------------
# Order Functions (Including Checkout)
# -----------------------------------------------------------------

def _order_items(session: Session, order_id: int) -> List[OrderItem]:
    return session.exec(select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)).all()


def create_order(user_id: int, order_in: OrderCreate) -> Tuple[Order, List[OrderItem]]:
    """
    1. Resolve the shipping address
    2. Price every line from the catalog and check stock
    3. Create Order Record + Order Items
    4. Decrease Stock
    5. Clear the user's Cart

    Everything happens in one session, nothing is committed if a step fails.
    """
    with Session(engine) as session:

        # 1. Address
        if order_in.address_id is not None:
            address = session.get(Address, order_in.address_id)
            if not address or address.user_id != user_id:
                raise HTTPException(status_code=404, detail="Address not found")
        elif order_in.address is not None:
            address = _new_address(session, user_id, order_in.address)
        else:
            raise HTTPException(status_code=400, detail="Shipping address is required")

        # 2. Price & stock
        lines = []
        subtotal = 0.0
        for entry in order_in.items:
            product = session.get(Product, entry.product_id)
            if not product or not product.is_active:
                raise HTTPException(status_code=400, detail=f"Product {entry.product_id} is not available")
            if product.stock < entry.quantity:
                raise HTTPException(status_code=400, detail=f"Insufficient stock for {product.name}")
            lines.append((product, entry.quantity))
            subtotal += product.price * entry.quantity

        subtotal = round(subtotal, 2)
        shipping_fee = order_in.shipping_fee if order_in.shipping_fee is not None else DELIVERY_FEE
        total = round(subtotal + shipping_fee + order_in.tax - order_in.discount, 2)

        # 3. Order record
        order = Order(
            order_number=generate_order_number(),
            user_id=user_id,
            address_id=address.id,
            payment_method=order_in.payment_method,
            subtotal=subtotal,
            shipping_fee=shipping_fee,
            tax=order_in.tax,
            discount=order_in.discount,
            total=max(total, 0),
            notes=order_in.notes,
        )
        session.add(order)
        session.flush()

        # 4. Items & stock
        for product, quantity in lines:
            session.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                product_name=product.name,
                product_image=product.image,
                quantity=quantity,
                price=product.price,
                subtotal=round(product.price * quantity, 2),
            ))
            product.stock -= quantity
            session.add(product)

        # 5. Cart
        for item in session.exec(select(CartItem).where(CartItem.user_id == user_id)).all():
            session.delete(item)

        session.commit()
        session.refresh(order)
        logger.info("Order %s created for user %s (total %.2f)", order.order_number, user_id, order.total)
        return order, _order_items(session, order.id)


def get_order_with_items(order_id: int) -> Tuple[Order, List[OrderItem]]:
    with Session(engine) as session:
        order = _get_or_404(session, Order, order_id, "Order")
        return order, _order_items(session, order.id)


def list_orders(
    user_id: Optional[int] = None,
    status_filter: Optional[str] = None,
    payment_status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Tuple[Order, List[OrderItem]]], int]:
    with Session(engine) as session:
        statement = select(Order)
        if user_id is not None:
            statement = statement.where(Order.user_id == user_id)
        if status_filter:
            statement = statement.where(Order.status == status_filter)
        if payment_status:
            statement = statement.where(Order.payment_status == payment_status)

        total = _count(session, statement)
        statement = statement.order_by(col(Order.created_at).desc(), col(Order.id).desc())
        orders = session.exec(_paginate(statement, page, limit)).all()
        return [(order, _order_items(session, order.id)) for order in orders], total


def lookup_order(query: str) -> Optional[Dict[str, Any]]:
    """Public order tracking. Only returns fields that are safe to show to anyone holding the number."""
    query = query.strip()
    with Session(engine) as session:
        order = None
        if query.isdigit():
            order = session.get(Order, int(query))
        if order is None:
            order = session.exec(select(Order).where(Order.order_number == query.upper())).first()
        if order is None:
            return None

        address = session.get(Address, order.address_id) if order.address_id else None
        return {
            "id": order.id,
            "order_number": order.order_number,
            "status": order.status,
            "created_at": order.created_at,
            "subtotal": order.subtotal,
            "shipping_fee": order.shipping_fee,
            "total": order.total,
            "address": {
                "recipient_name": address.recipient_name,
                "province": address.province,
                "city": address.city,
                "district": address.district,
            } if address else None,
            "items": [
                {
                    "product_name": item.product_name,
                    "product_image": item.product_image,
                    "quantity": item.quantity,
                    "price": item.price,
                    "subtotal": item.subtotal,
                }
                for item in _order_items(session, order.id)
            ],
        }


def update_order(order_id: int, update: OrderUpdate) -> Tuple[Order, List[OrderItem], str]:
    """Admin update. Returns the order, its items and the status it had before."""
    with Session(engine) as session:
        order = _get_or_404(session, Order, order_id, "Order")
        previous_status = order.status
        items = _order_items(session, order.id)

        if update.status and update.status != previous_status:
            if update.status == "cancelled":
                # Put the stock back
                for item in items:
                    product = session.get(Product, item.product_id)
                    if product:
                        product.stock += item.quantity
                        session.add(product)
            elif previous_status == "cancelled":
                # Reopened, take the stock out again
                for item in items:
                    product = session.get(Product, item.product_id)
                    if not product or product.stock < item.quantity:
                        raise HTTPException(status_code=400, detail=f"Insufficient stock to reopen order: {item.product_name}")
                    product.stock -= item.quantity
                    session.add(product)
            if update.status == "shipped" and not (update.tracking_number or order.tracking_number):
                order.tracking_number = generate_tracking_number()
            order.status = update.status

        if update.payment_status:
            order.payment_status = update.payment_status
        if update.tracking_number:
            order.tracking_number = update.tracking_number
        if update.notes is not None:
            order.notes = update.notes
        _touch(order)

        session.add(order)
        session.commit()
        session.refresh(order)
        return order, _order_items(session, order.id), previous_status


def find_order(reference) -> Optional[Order]:
    """Finds an order by numeric id or order number."""
    if reference is None:
        return None
    with Session(engine) as session:
        reference = str(reference).strip()
        if reference.isdigit():
            order = session.get(Order, int(reference))
            if order:
                return order
        return session.exec(select(Order).where(Order.order_number == reference)).first()


def set_order_payment(order_id: int, payment_status: str, reference: Optional[str] = None) -> Optional[Order]:
    with Session(engine) as session:
        order = session.get(Order, order_id)
        if not order:
            return None
        order.payment_status = payment_status
        if reference:
            order.payment_reference = reference
        if payment_status == "paid" and order.status == "pending":
            order.status = "confirmed"
        _touch(order)
        session.add(order)
        session.commit()
        session.refresh(order)
        return order


def find_order_by_payment_reference(reference: str) -> Optional[Order]:
    with Session(engine) as session:
        return session.exec(select(Order).where(Order.payment_reference == reference)).first()


# -----------------------------------------------------------------
# Review Functions
# -----------------------------------------------------------------

def _recompute_product_rating(session: Session, product_id: int):
    avg_rating, review_count = session.exec(
        select(func.avg(Review.rating), func.count(Review.id))
        .where((Review.product_id == product_id) & (Review.is_approved == True))  # noqa: E712
    ).one()
    product = session.get(Product, product_id)
    if product:
        product.rating = round(float(avg_rating or 0), 1)
        product.review_count = review_count
        session.add(product)


def list_product_reviews(product_id: int) -> List[Dict[str, Any]]:
    with Session(engine) as session:
        statement = (
            select(Review, User.name)
            .join(User, User.id == Review.user_id)
            .where((Review.product_id == product_id) & (Review.is_approved == True))  # noqa: E712
            .order_by(col(Review.created_at).desc(), col(Review.id).desc())
        )
        results = []
        for review, user_name in session.exec(statement).all():
            entry = review.model_dump()
            entry["user_name"] = user_name
            results.append(entry)
        return results


def list_user_reviews(user_id: int) -> List[Dict[str, Any]]:
    with Session(engine) as session:
        statement = (
            select(Review, Product.name, Product.image)
            .join(Product, Product.id == Review.product_id)
            .where(Review.user_id == user_id)
            .order_by(col(Review.created_at).desc(), col(Review.id).desc())
        )
        results = []
        for review, product_name, product_image in session.exec(statement).all():
            entry = review.model_dump()
            entry["product_name"] = product_name
            entry["product_image"] = product_image
            results.append(entry)
        return results


def add_review(user_id: int, review_in: ReviewCreate) -> Review:
    with Session(engine) as session:
        _get_or_404(session, Product, review_in.product_id, "Product")

        # A review is "verified" when it is tied to one of the user's own orders containing the product
        verified = False
        if review_in.order_id:
            order = session.get(Order, review_in.order_id)
            if order and order.user_id == user_id:
                verified = session.exec(
                    select(OrderItem.id).where(
                        (OrderItem.order_id == order.id) & (OrderItem.product_id == review_in.product_id)
                    )
                ).first() is not None

        review = Review(
            product_id=review_in.product_id,
            user_id=user_id,
            order_id=review_in.order_id if verified else None,
            rating=review_in.rating,
            comment=review_in.comment,
            is_verified=verified,
        )
        session.add(review)
        session.flush()
        _recompute_product_rating(session, review.product_id)
        session.commit()
        session.refresh(review)
        return review


def delete_review(review_id: int, user_id: int):
    with Session(engine) as session:
        review = session.get(Review, review_id)
        if not review or review.user_id != user_id:
            raise HTTPException(status_code=404, detail="Review not found or unauthorized")
        product_id = review.product_id
        session.delete(review)
        session.flush()
        _recompute_product_rating(session, product_id)
        session.commit()


# -----------------------------------------------------------------
# Wishlist Functions
# -----------------------------------------------------------------

def list_wishlist(user_id: int) -> List[Dict[str, Any]]:
    with Session(engine) as session:
        statement = (
            select(WishlistItem, Product)
            .join(Product, Product.id == WishlistItem.product_id)
            .where(WishlistItem.user_id == user_id)
            .order_by(col(WishlistItem.created_at).desc(), col(WishlistItem.id).desc())
        )
        return [
            {
                "id": item.id,
                "product_id": product.id,
                "created_at": item.created_at,
                "name": product.name,
                "price": product.price,
                "original_price": product.original_price,
                "image": product.image,
                "stock": product.stock,
                "unit": product.unit,
                "rating": product.rating,
                "is_active": product.is_active,
            }
            for item, product in session.exec(statement).all()
        ]


def add_to_wishlist(user_id: int, product_id: int) -> WishlistItem:
    with Session(engine) as session:
        _get_or_404(session, Product, product_id, "Product")

        existing = session.exec(
            select(WishlistItem).where((WishlistItem.user_id == user_id) & (WishlistItem.product_id == product_id))
        ).first()
        if existing:
            return existing

        item = WishlistItem(user_id=user_id, product_id=product_id)
        session.add(item)
        session.commit()
        session.refresh(item)
        return item


def remove_wishlist_item(item_id: int, user_id: int):
    with Session(engine) as session:
        item = session.get(WishlistItem, item_id)
        if not item or item.user_id != user_id:
            raise HTTPException(status_code=404, detail="Wishlist item not found")
        session.delete(item)
        session.commit()


def clear_wishlist(user_id: int):
    with Session(engine) as session:
        for item in session.exec(select(WishlistItem).where(WishlistItem.user_id == user_id)).all():
            session.delete(item)
        session.commit()


# -----------------------------------------------------------------
# Storefront Content Functions
# -----------------------------------------------------------------

def list_testimonials(active: Optional[bool] = True) -> List[Testimonial]:
    with Session(engine) as session:
        statement = select(Testimonial)
        if active is not None:
            statement = statement.where(Testimonial.is_active == active)
        return session.exec(statement.order_by(col(Testimonial.created_at).desc(), col(Testimonial.id).desc())).all()


def list_news_items(active: Optional[bool] = True) -> List[NewsItem]:
    with Session(engine) as session:
        statement = select(NewsItem)
        if active is not None:
            statement = statement.where(NewsItem.is_active == active)
        return session.exec(statement.order_by(NewsItem.display_order, col(NewsItem.created_at).desc())).all()


def get_setting(key: str):
    with Session(engine) as session:
        setting = session.get(SiteSetting, key)
        return setting.value if setting else None


def upsert_setting(key: str, value) -> SiteSetting:
    with Session(engine) as session:
        setting = session.get(SiteSetting, key)
        if setting:
            setting.value = value
            setting.updated_at = datetime.utcnow()
        else:
            setting = SiteSetting(key=key, value=value)
        session.add(setting)
        session.commit()
        session.refresh(setting)
        return setting
