# App


# Importing FastAPI
from fastapi import FastAPI, APIRouter, HTTPException, status, Depends, Query, BackgroundTasks, UploadFile, File, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, RedirectResponse

from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware
from authlib.integrations.starlette_client import OAuthError

from typing import List, Optional
from contextlib import asynccontextmanager
from datetime import datetime
import logging
import os
import time
import uuid

from config import (
    APP_ENV,
    IS_PRODUCTION,
    API_VERSION,
    LOG_LEVEL,
    SECRET_KEY,
    CORS_ORIGIN,
    FRONTEND_URL,
    BACKEND_URL,
    GOOGLE_CLIENT_ID,
    UPLOAD_DIR,
    MAX_UPLOAD_BYTES,
    ALLOWED_IMAGE_TYPES,
    STRIPE_DEFAULT_CURRENCY,
    REFRESH_COOKIE,
)

from auth import (
    hash_password,
    verify_password,
    is_disposable_email,
    token_payload,
    create_tokens,
    create_access_token,
    decode_refresh_token,
    set_auth_cookies,
    clear_auth_cookies,
    generate_csrf_token,
    set_csrf_cookie,
    random_password,
    fetch_google_userinfo,

    oauth, # Google OAuth
)

from dependencies import get_current_user, get_optional_user, require_admin

# Importing custom-built database functions
from database import (
    create_db_and_tables,
    get_record,
    add_record,
    update_record,
    delete_record,
    add_user,
    get_user_by_email,
    get_user_by_id,
    update_user,
    set_user_password,
    mark_user_verified,
    list_users,
    save_otp,
    check_otp,
    otp_cooldown_remaining,
    list_categories,
    list_categories_with_counts,
    delete_category,
    get_all_products,
    get_featured_products,
    add_product,
    update_product,
    get_cart,
    add_item_to_cart,
    update_cart_item,
    remove_cart_item,
    clear_cart,
    list_addresses,
    add_address,
    update_address,
    delete_address,
    create_order,
    get_order_with_items,
    list_orders,
    lookup_order,
    update_order,
    find_order,
    find_order_by_payment_reference,
    set_order_payment,
    list_product_reviews,
    list_user_reviews,
    add_review,
    delete_review,
    list_wishlist,
    add_to_wishlist,
    remove_wishlist_item,
    clear_wishlist,
    list_testimonials,
    list_news_items,
    get_setting,
    upsert_setting,
)

from emails import (
    send_verification_email,
    send_password_reset_email,
    send_order_status_email,
    send_contact_email,
)

from payments import (
    paypal_create_order,
    paypal_capture_order,
    create_payment_intent,
    retrieve_payment_intent,
    create_checkout_link,
    parse_webhook_event,
    paypal_captured_amount,
    is_valid_currency,
    to_minor_units,
    SUPPORTED_CURRENCIES,
    MINIMUM_AMOUNT,
    validate_tx_hash,
    crypto_wallets,
    build_whatsapp_link,
    verify_recaptcha,
)

# Importing the SQLModel classes
from db_models import User, Category, Product, Testimonial, NewsItem

# Importing the Schemas
from schemas import *
from responses import success, paginated, error

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

os.makedirs(UPLOAD_DIR, exist_ok=True)

# -----------------------------
# Building the App
# -----------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    create_db_and_tables()
    logger.info("Afghan Grocery API started (%s)", APP_ENV)
    yield

app = FastAPI(
    title="Afghan Grocery API",
    version=API_VERSION,
    lifespan=lifespan
)

router = APIRouter(prefix=f"/api/{API_VERSION}")

app.add_middleware(SessionMiddleware, secret_key=SECRET_KEY)
app.add_middleware(GZipMiddleware, minimum_size=1024)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in CORS_ORIGIN.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-CSRF-Token"],
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    return response


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, duration_ms)
    return response


# -------------------------------------------------------------------------------------------------------------------------------------------------
# --- Error Envelope ---
# -------------------------------------------------------------------------------------------------------------------------------------------------

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail
    # Starlette's own 404 for a path no route matched
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = f"Route {request.url.path} not found"
    return JSONResponse(status_code=exc.status_code, content=error(message), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err["loc"] if part != "body"),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error("Validation failed", errors))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = "An unexpected error occurred" if IS_PRODUCTION else str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=error(message))


# -------------------------------------------------------------------------------------------------------------------------------------------------

# Serializers

def user_data(user: User) -> dict:
    # Never hand out the SQLModel row itself, it carries the password hash
    return UserRead.model_validate(user).model_dump()


def order_data(order, items) -> dict:
    order_schema = OrderRead.model_validate(order)
    order_schema.items = [OrderItemRead.model_validate(item) for item in items]
    return order_schema.model_dump()


def auth_payload(user: User, response: Response) -> dict:
    tokens = create_tokens(user)
    set_auth_cookies(response, tokens)
    return {"user": user_data(user), **tokens}


def parse_active(active: Optional[str]) -> Optional[bool]:
    """Storefront lists show active records unless ?active=false (or ?active=all for everything)."""
    if active is None:
        return True
    value = active.strip().lower()
    if value == "all":
        return None
    return value not in ("false", "0", "no")


# Root
@app.get("/")
def root():
    return {
        "message": "Welcome to the Afghan Grocery API",
        "version": API_VERSION,
        "documentation": "/docs",
    }


@app.get("/health")
def health():
    return {"status": "OK", "timestamp": datetime.utcnow().isoformat() + "Z", "environment": APP_ENV}


# -------------------------------------------------------------------------------------------------------------------------------------------------
# --- Auth Endpoints ---
# -------------------------------------------------------------------------------------------------------------------------------------------------

@router.get("/auth/csrf-token", tags=["Auth"])
def csrf_token(response: Response):
    token = generate_csrf_token()
    set_csrf_cookie(response, token)
    return success({"csrfToken": token})


# Signup Endpoint - POST  ---> Returns the user and a fresh token pair
@router.post("/auth/register", status_code=status.HTTP_201_CREATED, tags=["Auth"])   # Returns 201 on Success
async def register(
    user_in: RegisterRequest,
    response: Response,
    background_tasks: BackgroundTasks,
):
    email = user_in.email.lower()

    if is_disposable_email(email):
        raise HTTPException(status_code=400, detail="Disposable email addresses are not allowed")

    # Check if email already exists
    exists = await run_in_threadpool(get_user_by_email, email)
    if exists:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")

    # Hashing the password
    hashed_password = hash_password(user_in.password)
    user = await run_in_threadpool(add_user, email, hashed_password, user_in.name, user_in.phone)

    # Signup verification code
    otp = await run_in_threadpool(save_otp, email, "signup")
    send_verification_email(email, otp, background_tasks)

    logger.info("New user registered: %s", email)
    return success(auth_payload(user, response), "Registration successful. Please check your email for the verification code.")


# Login Endpoint - POST ---> Accepts JSON Body
@router.post("/auth/login", tags=["Auth"])
async def login(req: LoginRequest, response: Response):

    user = await run_in_threadpool(get_user_by_email, req.email)

    # Same message for unknown mail and wrong password
    if not user or not verify_password(req.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

    return success(auth_payload(user, response), "Login successful")


@router.post("/auth/refresh", tags=["Auth"])
async def refresh_token(request: Request, response: Response, body: Optional[RefreshRequest] = None):
    token = (body.refresh_token if body else None) or request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No refresh token provided")

    payload = decode_refresh_token(token)
    user = await run_in_threadpool(get_user_by_id, payload.get("userId"))
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    access_token = create_access_token(token_payload(user))
    set_auth_cookies(response, {"accessToken": access_token})
    return success({"accessToken": access_token})


@router.post("/auth/logout", tags=["Auth"])
def logout(response: Response):
    clear_auth_cookies(response)
    return success(None, "Logged out successfully")


@router.get("/auth/me", tags=["Auth"])
@router.get("/auth/profile", tags=["Auth"])
def get_me(user: User = Depends(get_current_user)):
    return success(user_data(user))


@router.put("/auth/profile", tags=["Auth"])
def update_profile(update_data: ProfileUpdate, user: User = Depends(get_current_user)):
    updated = update_user(user.id, update_data.model_dump(exclude_unset=True))
    return success(user_data(updated), "Profile updated successfully")


@router.post("/auth/change-password", tags=["Auth"])
def change_password(req: ChangePasswordRequest, user: User = Depends(get_current_user)):
    if not verify_password(req.current_password, user.hashed_password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    set_user_password(user.id, hash_password(req.new_password))
    return success(None, "Password changed successfully")


@router.get("/auth/users", tags=["Auth"])
def get_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
):
    users, total = list_users(page, limit)
    return paginated([user_data(u) for u in users], page, limit, total)


@router.put("/auth/users/{user_id}", tags=["Auth"])
def admin_update_user(user_id: int, update_data: AdminUserUpdate, admin: User = Depends(require_admin)):
    updated = update_user(user_id, update_data.model_dump(exclude_unset=True))
    logger.info("Admin %s updated user %s", admin.email, user_id)
    return success(user_data(updated), "User updated successfully")


# -------------------------------------------------------------------------------------------------------------------------------------------------
# Account Verification & Password Reset (OTP)
# -------------------------------------------------------------------------------------------------------------------------------------------------

@router.post("/auth/verify-email", tags=["Auth"])
def verify_email(req: VerifyEmailRequest):
    check_otp(req.email, "signup", req.code)

    user = mark_user_verified(req.email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return success(user_data(user), "Email verified successfully")


@router.post("/auth/resend-otp", tags=["Auth"])
async def resend_otp(req: ResendOTPRequest, background_tasks: BackgroundTasks):
    user = await run_in_threadpool(get_user_by_email, req.email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if req.type == "signup" and user.is_verified:
        raise HTTPException(status_code=400, detail="Email already verified")

    wait = await run_in_threadpool(otp_cooldown_remaining, req.email, req.type)
    if wait:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=f"Please wait {wait} seconds before requesting a new code")

    otp = await run_in_threadpool(save_otp, req.email, req.type)
    if req.type == "signup":
        send_verification_email(user.email, otp, background_tasks)
    else:
        send_password_reset_email(user.email, otp, background_tasks)

    return success(None, "Verification code sent")


# Password Forgot Endpoint
@router.post("/auth/forgot-password", tags=["Auth"])
async def forgot_password(req: ForgotPasswordRequest, background_tasks: BackgroundTasks):

    user = await run_in_threadpool(get_user_by_email, req.email)

    # Same answer whether or not the account exists
    if user:
        wait = await run_in_threadpool(otp_cooldown_remaining, req.email, "password_reset")
        if wait:
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=f"Please wait {wait} seconds before requesting a new code")

        otp = await run_in_threadpool(save_otp, req.email, "password_reset")
        send_password_reset_email(user.email, otp, background_tasks)

    return success(None, "If an account exists for this email, a reset code has been sent.")


# Password Reset Endpoint
@router.post("/auth/reset-password", tags=["Auth"])
def reset_password(req: ResetPasswordRequest):
    check_otp(req.email, "password_reset", req.code)

    user = get_user_by_email(req.email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    set_user_password(user.id, hash_password(req.new_password))
    return success(None, "Password updated successfully. You can now login.")


# -------------------------------------------------------------------------------------------------------------------------------------------------
# --- Social Login Endpoints ---
# -------------------------------------------------------------------------------------------------------------------------------------------------

def find_or_create_oauth_user(email: str, name: Optional[str]) -> User:
    user = get_user_by_email(email)
    if not user:
        return add_user(
            email.lower(),
            random_password(),
            name or email.split("@")[0],
            is_verified=True,
            auth_provider="google",
        )
    if not user.is_verified:
        user = mark_user_verified(email)
    return user


@router.get("/auth/oauth/google", tags=["Social Auth"])
async def oauth_google(request: Request):
    if not GOOGLE_CLIENT_ID:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Google login is not configured")

    if BACKEND_URL:
        redirect_uri = f"{BACKEND_URL}/api/{API_VERSION}/auth/oauth/callback"
    else:
        redirect_uri = str(request.url_for("oauth_callback"))
    return await oauth.google.authorize_redirect(request, redirect_uri)


@router.get("/auth/oauth/callback", tags=["Social Auth"])
async def oauth_callback(request: Request):
    try:
        token = await oauth.google.authorize_access_token(request)
        user_info = token.get("userinfo") or await oauth.google.userinfo(token=token)
    except OAuthError as exc:
        logger.warning("Google OAuth callback failed: %s", exc)
        return RedirectResponse(url=f"{FRONTEND_URL}/login?error=oauth_failed")

    email = user_info.get("email")
    if not email:
        return RedirectResponse(url=f"{FRONTEND_URL}/login?error=oauth_failed")

    user = await run_in_threadpool(find_or_create_oauth_user, email, user_info.get("name"))

    response = RedirectResponse(url=f"{FRONTEND_URL}/auth/callback")
    set_auth_cookies(response, create_tokens(user))
    logger.info("Google login for %s", email)
    return response


@router.post("/auth/oauth/exchange", tags=["Social Auth"])
async def oauth_exchange(req: OAuthExchangeRequest, response: Response):
    user_info = await fetch_google_userinfo(req.access_token)
    user = await run_in_threadpool(find_or_create_oauth_user, user_info["email"], user_info.get("name"))
    return success(auth_payload(user, response), "Login successful")


OAUTH_FALLBACK_JS = """(function () {
  var params = new URLSearchParams(window.location.hash.slice(1));
  var accessToken = params.get('access_token');
  if (!accessToken) { return; }
  history.replaceState(null, '', window.location.pathname + window.location.search);
  fetch('%(exchange_url)s', {
    method: 'POST',
    credentials: 'include',
    headers: { 'Content-Type': 'application/json' },
    body: JSON.stringify({ access_token: accessToken })
  }).then(function (res) {
    window.location.replace(res.ok ? '%(frontend)s/' : '%(frontend)s/login?error=oauth_failed');
  });
})();
"""


@router.get("/auth/oauth/fallback.js", tags=["Social Auth"])
def oauth_fallback_js():
    script = OAUTH_FALLBACK_JS % {
        "exchange_url": f"{BACKEND_URL}/api/{API_VERSION}/auth/oauth/exchange",
        "frontend": FRONTEND_URL,
    }
    return Response(content=script, media_type="application/javascript")


# -------------------------------------------------------------------------------------------------------------------------------------------------
# --- Category Endpoints ---
# -------------------------------------------------------------------------------------------------------------------------------------------------

@router.get("/categories", tags=["Categories"])
def get_categories(active: Optional[str] = None):
    return success(list_categories(parse_active(active)))


@router.get("/categories/with-counts", tags=["Categories"])
def get_categories_with_counts():
    return success(list_categories_with_counts())


@router.get("/categories/{category_id}", tags=["Categories"])
def get_category(category_id: int):
    return success(get_record(Category, category_id, "Category"))


@router.post("/categories", status_code=status.HTTP_201_CREATED, tags=["Categories"])
def create_category(category: CategoryCreate, admin: User = Depends(require_admin)):
    created = add_record(Category, category.model_dump(exclude_none=True))
    return success(created, "Category created successfully")


@router.put("/categories/{category_id}", tags=["Categories"])
def edit_category(category_id: int, category: CategoryUpdate, admin: User = Depends(require_admin)):
    updated = update_record(Category, category_id, category.model_dump(exclude_unset=True), "Category")
    return success(updated, "Category updated successfully")


@router.delete("/categories/{category_id}", tags=["Categories"])
def remove_category(category_id: int, admin: User = Depends(require_admin)):
    delete_category(category_id)
    return success(None, "Category deleted successfully")


# -------------------------------------------------------------------------------------------------------------------------------------------------
# --- Product Endpoints ---
# -------------------------------------------------------------------------------------------------------------------------------------------------

@router.get("/products", tags=["Products"])
def get_products(
    category: Optional[int] = None,
    featured: Optional[bool] = None,
    active: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    search: Optional[str] = None,
    ids: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    id_list = None
    if ids:
        try:
            id_list = [int(part) for part in ids.split(",") if part.strip()]
        except ValueError:
            raise HTTPException(status_code=400, detail="ids must be a comma separated list of numbers")

    products, total = get_all_products(
        category=category,
        featured=featured,
        active=parse_active(active),
        min_price=min_price,
        max_price=max_price,
        search=search.strip() if search else None,
        ids=id_list,
        page=page,
        limit=limit,
    )
    return paginated(products, page, limit, total)


@router.get("/products/featured", tags=["Products"])
def featured_products(limit: int = Query(8, ge=1, le=50)):
    return success(get_featured_products(limit))


@router.get("/products/{product_id}", tags=["Products"])
def get_product(product_id: int):
    return success(get_record(Product, product_id, "Product"))


@router.post("/products", status_code=status.HTTP_201_CREATED, tags=["Products"])
def create_product(product: ProductCreate, admin: User = Depends(require_admin)):
    created = add_product(product.model_dump(exclude_none=True))
    logger.info("Admin %s created product %s", admin.email, created.id)
    return success(created, "Product created successfully")


@router.put("/products/{product_id}", tags=["Products"])
def edit_product(product_id: int, product: ProductUpdate, admin: User = Depends(require_admin)):
    updated = update_product(product_id, product.model_dump(exclude_unset=True))
    return success(updated, "Product updated successfully")


@router.delete("/products/{product_id}", tags=["Products"])
def remove_product(product_id: int, admin: User = Depends(require_admin)):
    delete_record(Product, product_id, "Product")
    return success(None, "Product deleted successfully")


# -------------------------------------------------------------------------------------------------------------------------------------------------
# --- Cart Endpoints ---
# -------------------------------------------------------------------------------------------------------------------------------------------------

@router.get("/cart", tags=["Cart"])
def get_customer_cart(user: User = Depends(get_current_user)):
    return success(get_cart(user.id))


@router.post("/cart/items", tags=["Cart"])
def add_to_cart(item: CartItemCreate, user: User = Depends(get_current_user)):
    add_item_to_cart(user.id, item.product_id, item.quantity)
    return success(get_cart(user.id), "Item added to cart")


@router.put("/cart/items/{product_id}", tags=["Cart"])
def change_cart_quantity(product_id: int, item: CartItemUpdate, user: User = Depends(get_current_user)):
    update_cart_item(user.id, product_id, item.quantity)
    return success(get_cart(user.id), "Cart updated")


@router.delete("/cart/items/{product_id}", tags=["Cart"])
def delete_cart_item(product_id: int, user: User = Depends(get_current_user)):
    remove_cart_item(user.id, product_id)
    return success(get_cart(user.id), "Item removed from cart")


@router.delete("/cart", tags=["Cart"])
def empty_cart(user: User = Depends(get_current_user)):
    clear_cart(user.id)
    return success(get_cart(user.id), "Cart cleared")


# -------------------------------------------------------------------------------------------------------------------------------------------------
# --- Order Endpoints ---
# -------------------------------------------------------------------------------------------------------------------------------------------------

@router.post("/orders", status_code=status.HTTP_201_CREATED, tags=["Orders"])
async def place_order(order_in: OrderCreate, user: User = Depends(get_current_user)):
    if not await verify_recaptcha(order_in.recaptcha_token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="reCAPTCHA verification failed")

    order, items = await run_in_threadpool(create_order, user.id, order_in)
    return success(order_data(order, items), "Order placed successfully")


# Public order tracking
@router.get("/orders/lookup", tags=["Orders"])
def track_order(q: str = Query(..., min_length=1)):
    return success(lookup_order(q))


@router.get("/orders", tags=["Orders"])
def get_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    payment_status: Optional[PaymentStatus] = None,
    user_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
):
    # Customers only ever see their own orders
    owner_id = user_id if user.role == "admin" else user.id

    results, total = list_orders(owner_id, status_filter, payment_status, page, limit)
    return paginated([order_data(order, items) for order, items in results], page, limit, total)


@router.get("/orders/{order_id}", tags=["Orders"])
def get_order(order_id: int, user: User = Depends(get_current_user)):
    order, items = get_order_with_items(order_id)
    if order.user_id != user.id and user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to view this order")
    return success(order_data(order, items))


@router.put("/orders/{order_id}", tags=["Orders"])
async def edit_order(
    order_id: int,
    update: OrderUpdate,
    background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin),
):
    order, items, previous_status = await run_in_threadpool(update_order, order_id, update)

    if order.status != previous_status:
        logger.info("Order %s: %s -> %s", order.order_number, previous_status, order.status)
        customer = await run_in_threadpool(get_user_by_id, order.user_id)
        if customer:
            send_order_status_email(
                customer.email,
                customer.name,
                order.order_number,
                order.status,
                background_tasks,
                tracking_number=order.tracking_number,
            )

    return success(order_data(order, items), "Order updated successfully")


# -------------------------------------------------------------------------------------------------------------------------------------------------
# --- Review Endpoints ---
# -------------------------------------------------------------------------------------------------------------------------------------------------

@router.get("/reviews/product/{product_id}", tags=["Reviews"])
def product_reviews(product_id: int):
    return success(list_product_reviews(product_id))


@router.get("/reviews/user", tags=["Reviews"])
def my_reviews(user: User = Depends(get_current_user)):
    return success(list_user_reviews(user.id))


@router.post("/reviews", status_code=status.HTTP_201_CREATED, tags=["Reviews"])
def create_review(review: ReviewCreate, user: User = Depends(get_current_user)):
    return success(add_review(user.id, review), "Review submitted successfully")


@router.delete("/reviews/{review_id}", tags=["Reviews"])
def remove_review(review_id: int, user: User = Depends(get_current_user)):
    delete_review(review_id, user.id)
    return success(None, "Review deleted successfully")


# -------------------------------------------------------------------------------------------------------------------------------------------------
# --- Wishlist Endpoints ---
# -------------------------------------------------------------------------------------------------------------------------------------------------

@router.get("/wishlist", tags=["Wishlist"])
def get_wishlist(user: User = Depends(get_current_user)):
    return success(list_wishlist(user.id))


@router.post("/wishlist", status_code=status.HTTP_201_CREATED, tags=["Wishlist"])
def wishlist_add(item: WishlistAdd, user: User = Depends(get_current_user)):
    return success(add_to_wishlist(user.id, item.product_id), "Added to wishlist")


@router.delete("/wishlist/{item_id}", tags=["Wishlist"])
def wishlist_remove(item_id: int, user: User = Depends(get_current_user)):
    remove_wishlist_item(item_id, user.id)
    return success(None, "Removed from wishlist")


@router.delete("/wishlist", tags=["Wishlist"])
def wishlist_clear(user: User = Depends(get_current_user)):
    clear_wishlist(user.id)
    return success(None, "Wishlist cleared")


# -------------------------------------------------------------------------------------------------------------------------------------------------
# --- Address Book Endpoints ---
# -------------------------------------------------------------------------------------------------------------------------------------------------

@router.get("/addresses", tags=["Addresses"])
def get_addresses(user: User = Depends(get_current_user)):
    return success(list_addresses(user.id))


@router.post("/addresses", status_code=status.HTTP_201_CREATED, tags=["Addresses"])
def create_address(address: AddressCreate, user: User = Depends(get_current_user)):
    return success(add_address(user.id, address), "Address added successfully")


@router.put("/addresses/{address_id}", tags=["Addresses"])
def edit_address(address_id: int, address: AddressUpdate, user: User = Depends(get_current_user)):
    updated = update_address(address_id, user.id, address.model_dump(exclude_unset=True))
    return success(updated, "Address updated successfully")


@router.delete("/addresses/{address_id}", tags=["Addresses"])
def remove_address(address_id: int, user: User = Depends(get_current_user)):
    delete_address(address_id, user.id)
    return success(None, "Address deleted successfully")


# -------------------------------------------------------------------------------------------------------------------------------------------------
# --- Storefront Content Endpoints ---
# -------------------------------------------------------------------------------------------------------------------------------------------------

@router.get("/testimonials", tags=["Content"])
def get_testimonials(active: Optional[str] = None):
    return success(list_testimonials(parse_active(active)))


@router.get("/testimonials/{testimonial_id}", tags=["Content"])
def get_testimonial(testimonial_id: int):
    return success(get_record(Testimonial, testimonial_id, "Testimonial"))


@router.post("/testimonials", status_code=status.HTTP_201_CREATED, tags=["Content"])
def create_testimonial(testimonial: TestimonialCreate, admin: User = Depends(require_admin)):
    return success(add_record(Testimonial, testimonial.model_dump()), "Testimonial created successfully")


@router.put("/testimonials/{testimonial_id}", tags=["Content"])
def edit_testimonial(testimonial_id: int, testimonial: TestimonialUpdate, admin: User = Depends(require_admin)):
    updated = update_record(Testimonial, testimonial_id, testimonial.model_dump(exclude_unset=True), "Testimonial")
    return success(updated, "Testimonial updated successfully")


@router.delete("/testimonials/{testimonial_id}", tags=["Content"])
def remove_testimonial(testimonial_id: int, admin: User = Depends(require_admin)):
    delete_record(Testimonial, testimonial_id, "Testimonial")
    return success(None, "Testimonial deleted successfully")


@router.get("/news-items", tags=["Content"])
def get_news_items(active: Optional[str] = None):
    return success(list_news_items(parse_active(active)))


@router.get("/news-items/{item_id}", tags=["Content"])
def get_news_item(item_id: int):
    return success(get_record(NewsItem, item_id, "News item"))


@router.post("/news-items", status_code=status.HTTP_201_CREATED, tags=["Content"])
def create_news_item(item: NewsItemCreate, admin: User = Depends(require_admin)):
    return success(add_record(NewsItem, item.model_dump(exclude_none=True)), "News item created successfully")


@router.put("/news-items/{item_id}", tags=["Content"])
def edit_news_item(item_id: int, item: NewsItemUpdate, admin: User = Depends(require_admin)):
    updated = update_record(NewsItem, item_id, item.model_dump(exclude_unset=True), "News item")
    return success(updated, "News item updated successfully")


@router.delete("/news-items/{item_id}", tags=["Content"])
def remove_news_item(item_id: int, admin: User = Depends(require_admin)):
    delete_record(NewsItem, item_id, "News item")
    return success(None, "News item deleted successfully")


@router.get("/settings/{key}", tags=["Content"])
def read_setting(key: str):
    return success(get_setting(key))


@router.put("/settings/{key}", tags=["Content"])
def write_setting(key: str, body: SettingUpdate, admin: User = Depends(require_admin)):
    setting = upsert_setting(key, body.value)
    return success(setting.value, "Setting saved")


# -------------------------------------------------------------------------------------------------------------------------------------------------
# --- Support & Uploads ---
# -------------------------------------------------------------------------------------------------------------------------------------------------

@router.post("/support/contact", tags=["Support"])
def contact_support(
    form: ContactRequest,
    background_tasks: BackgroundTasks,
    user: Optional[User] = Depends(get_optional_user),
):
    logger.info("Contact message from %s (user %s)", form.email, user.id if user else "guest")
    send_contact_email(form.model_dump(), background_tasks)
    return success({"received": True}, "Thank you, we will get back to you soon.")


@router.post("/upload", status_code=status.HTTP_201_CREATED, tags=["Uploads"])
async def upload_image(
    image: UploadFile = File(...),
    admin: User = Depends(require_admin),
):
    extension = ALLOWED_IMAGE_TYPES.get(image.content_type)
    if not extension:
        raise HTTPException(status_code=400, detail="Only JPEG, PNG, WebP and GIF images are allowed")

    contents = await image.read()
    if len(contents) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail=f"File too large (max {MAX_UPLOAD_BYTES // (1024 * 1024)}MB)")

    # Random name, the client filename is never trusted
    new_filename = f"{uuid.uuid4().hex}.{extension}"
    with open(os.path.join(UPLOAD_DIR, new_filename), "wb") as buffer:
        buffer.write(contents)

    return success({"url": f"/uploads/{new_filename}"}, "Image uploaded successfully")


# -------------------------------------------------------------------------------------------------------------------------------------------------
# --- Payment Endpoints ---
# -------------------------------------------------------------------------------------------------------------------------------------------------

def owned_order(reference, user: User):
    """Resolves an order reference from a payment request. Unknown -> 404, someone else's -> 403."""
    order = find_order(reference)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.user_id != user.id and user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to pay for this order")
    return order


def check_intent_for_order(intent, order):
    """A succeeded intent only settles the order it was created for, and only for the full total."""
    metadata = intent.get("metadata") or {}
    if metadata.get("orderId") != str(order.id) and intent["id"] != order.payment_reference:
        logger.warning("Stripe intent %s does not belong to order %s", intent["id"], order.order_number)
        raise HTTPException(status_code=400, detail="Payment does not belong to this order")
    if intent.get("amount") != to_minor_units(order.total, intent.get("currency") or STRIPE_DEFAULT_CURRENCY):
        logger.warning("Stripe intent %s amount %s does not cover order %s", intent["id"], intent.get("amount"), order.order_number)
        raise HTTPException(status_code=400, detail="Payment amount does not match the order total")


@router.post("/payments/paypal/create-order", tags=["Payments"])
async def paypal_create(req: PayPalCreateRequest, user: User = Depends(get_current_user)):
    result = await paypal_create_order(req.amount, req.currency)
    logger.info("PayPal order %s created for user %s", result.get("id"), user.id)
    return success(result)


@router.post("/payments/paypal/capture-order", tags=["Payments"])
async def paypal_capture(req: PayPalCaptureRequest, user: User = Depends(get_current_user)):
    local_order = None
    if req.local_order_id is not None:
        local_order = await run_in_threadpool(owned_order, req.local_order_id, user)

    result = await paypal_capture_order(req.order_id)

    if local_order and result.get("status") == "COMPLETED":
        captured = paypal_captured_amount(result)
        if captured is None or abs(captured - local_order.total) >= 0.005:
            logger.warning("PayPal capture %s of %s does not cover order %s", req.order_id, captured, local_order.order_number)
            raise HTTPException(status_code=400, detail="Captured amount does not match the order total")
        await run_in_threadpool(set_order_payment, local_order.id, "paid", req.order_id)
        logger.info("Order %s paid with PayPal (%s)", local_order.order_number, req.order_id)

    return success(result)


@router.post("/payments/stripe/create-intent", tags=["Payments"])
async def stripe_create_intent(req: StripeIntentRequest, user: User = Depends(get_current_user)):
    currency = req.currency.lower()
    if not is_valid_currency(currency):
        raise HTTPException(status_code=400, detail=f"Unsupported currency: {req.currency}")
    if req.amount < MINIMUM_AMOUNT:
        raise HTTPException(status_code=400, detail=f"Amount must be at least {MINIMUM_AMOUNT} in the smallest currency unit")

    order = None
    if req.order_id:
        order = await run_in_threadpool(owned_order, req.order_id, user)
        if req.amount != to_minor_units(order.total, currency):
            raise HTTPException(status_code=400, detail="Amount does not match the order total")

    metadata ={"userId": str(user.id), "orderId": str(order.id) if order else ""}
    intent = await run_in_threadpool(create_payment_intent, req.amount, currency, metadata, req.description)

    if order:
        await run_in_threadpool(set_order_payment, order.id, order.payment_status, intent["id"])

    return success({
        "clientSecret": intent["client_secret"],
        "paymentIntentId": intent["id"],
        "amount": req.amount,
        "currency": currency,
    })


@router.post("/payments/stripe/payment-link", tags=["Payments"])
async def stripe_payment_link(req: StripeLinkRequest, user: User = Depends(get_current_user)):
    currency = req.currency.lower()
    if not is_valid_currency(currency):
        raise HTTPException(status_code=400, detail=f"Unsupported currency: {req.currency}")
    if not req.items:
        raise HTTPException(status_code=400, detail="At least one item is required")

    link = await run_in_threadpool(
        create_checkout_link,
        [item.model_dump() for item in req.items],
        currency,
        f"{FRONTEND_URL}/checkout/success",
        f"{FRONTEND_URL}/checkout",
        {"userId": str(user.id)},
    )
    return success({"url": link["url"], "id": link["id"]})


@router.post("/payments/stripe/confirm", tags=["Payments"])
async def stripe_confirm(req: StripeConfirmRequest, user: User = Depends(get_current_user)):
    intent = await run_in_threadpool(retrieve_payment_intent, req.payment_intent_id)

    if intent["status"] != "succeeded":
        raise HTTPException(status_code=400, detail=f"Payment not completed (status: {intent['status']})")

    order = None
    if req.order_id:
        order = await run_in_threadpool(owned_order, req.order_id, user)
        check_intent_for_order(intent, order)
        order = await run_in_threadpool(set_order_payment, order.id, "paid", intent["id"])
        logger.info("Order %s paid with Stripe (%s)", order.order_number, intent["id"])

    return success({
        "status": intent["status"],
        "paymentIntentId": intent["id"],
        "orderId": order.id if order else None,
        "paymentStatus": order.payment_status if order else None,
    }, "Payment confirmed")


@router.get("/payments/stripe/status/{payment_intent_id}", tags=["Payments"])
async def stripe_status(payment_intent_id: str, user: User = Depends(get_current_user)):
    intent = await run_in_threadpool(retrieve_payment_intent, payment_intent_id)
    return success({
        "id": intent["id"],
        "status": intent["status"],
        "amount": intent["amount"],
        "currency": intent["currency"],
    })


@router.get("/payments/stripe/currencies", tags=["Payments"])
def stripe_currencies():
    return success({
        "currencies": SUPPORTED_CURRENCIES,
        "default": STRIPE_DEFAULT_CURRENCY,
        "minimumAmount": MINIMUM_AMOUNT,
    })


def apply_stripe_event(event) -> Optional[str]:
    """Updates the matching order for the events we care about. Returns the new payment status, if any."""
    kind = event["type"]
    obj = event["data"]["object"]

    if kind in ("payment_intent.succeeded", "payment_intent.payment_failed"):
        metadata = obj.get("metadata") or {}
        order = find_order(metadata.get("orderId")) or find_order_by_payment_reference(obj["id"])
        if not order:
            logger.warning("Stripe %s for unknown order (intent %s)", kind, obj["id"])
            return None
        if kind == "payment_intent.succeeded" and obj.get("amount") != to_minor_units(order.total, obj.get("currency") or STRIPE_DEFAULT_CURRENCY):
            logger.warning("Stripe intent %s amount %s does not cover order %s", obj["id"], obj.get("amount"), order.order_number)
            return None
        new_status = "paid" if kind == "payment_intent.succeeded" else "failed"
        set_order_payment(order.id, new_status, obj["id"])
        return new_status

    if kind == "charge.refunded":
        order = find_order_by_payment_reference(obj.get("payment_intent"))
        if order:
            set_order_payment(order.id, "refunded")
            return "refunded"
    return None


@router.post("/payments/stripe/webhook", tags=["Payments"])
async def stripe_webhook(request: Request):
    payload = await request.body()
    event = parse_webhook_event(payload, request.headers.get("Stripe-Signature"))
    new_status = await run_in_threadpool(apply_stripe_event, event)
    logger.info("Stripe webhook %s handled (%s)", event["type"], new_status or "ignored")
    return {"received": True}


@router.post("/payments/whatsapp/link", tags=["Payments"])
def whatsapp_link(req: WhatsAppLinkRequest):
    url = build_whatsapp_link(req.order_id, req.total, [item.model_dump() for item in req.items], req.options)
    if not url:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="WhatsApp ordering is not configured")
    return success({"url": url})


@router.post("/payments/verify-crypto", tags=["Payments"])
def verify_crypto(req: CryptoVerifyRequest, user: User = Depends(get_current_user)):
    network = validate_tx_hash(req.type, req.tx_hash)
    tx_hash = req.tx_hash.strip()

    if req.order_id is not None:
        order = owned_order(req.order_id, user)
        # Recorded for an admin to check, payment stays pending
        set_order_payment(order.id, order.payment_status, tx_hash)

    logger.info("Crypto payment reported by user %s: %s %s", user.id, network, tx_hash)
    return success({
        "verified": False,
        "status": "pending_verification",
        "type": network,
        "txHash": tx_hash,
        "wallet": crypto_wallets()[network],
        "orderId": req.order_id,
    }, "Transaction recorded and awaiting verification")


# -------------------------------------------------------------------------------------------------------------------------------------------------

app.include_router(router)

# Uploaded images, e.g. /uploads/<name>.png
app.mount("/uploads", StaticFiles(directory=UPLOAD_DIR), name="uploads")
