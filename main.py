import json
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pymongo.errors import PyMongoError

import accounts
import analytics
import catalog
import database
import orders
import profiles
import settings
from errors import AppError, ValidationError
from schemas import OTPPurpose
from security import get_current_admin, get_current_user, issue_token
from uploads import delete_images, ensure_upload_dir, save_images

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("little_treasures")

STARTED_AT = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        database.ensure_indexes()
    except (PyMongoError, AppError) as e:
        logger.warning("Could not ensure indexes: %s", e)
    logger.info("Little Treasures API started")
    yield


app = FastAPI(title="Little Treasures API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ensure_upload_dir()
app.mount(settings.UPLOAD_URL_PREFIX, StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")


# ----------------------- Errors -----------------------
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = "Invalid request"
    if errors:
        loc = ".".join(str(p) for p in errors[0].get("loc", ()) if p != "body")
        detail = f"{loc}: {errors[0].get('msg')}" if loc else errors[0].get("msg")
    return JSONResponse(status_code=400, content={"detail": detail})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Something went wrong!"})


# ----------------------- Models -----------------------
class SendOTPBody(BaseModel):
    email: EmailStr
    type: OTPPurpose


class VerifyOTPBody(BaseModel):
    email: EmailStr
    otp: str
    type: OTPPurpose


class RegisterBody(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str
    phone: Optional[str] = None
    address: Optional[str] = None
    otp: str


class UserLoginBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    password: Optional[str] = None
    otp: Optional[str] = None
    login_type: str = Field("password", alias="loginType")


class ResetPasswordBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    otp: str
    new_password: str = Field(..., alias="newPassword")


class AdminLoginBody(BaseModel):
    email: EmailStr
    password: str


class CreateOrderBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    customer_info: dict = Field(..., alias="customerInfo")
    items: List[dict]
    payment_method: Optional[str] = Field("cod", alias="paymentMethod")
    notes: Optional[str] = ""
    user_id: Optional[str] = Field(None, alias="userId")


class OrderUpdateBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Optional[str] = None
    payment_status: Optional[str] = Field(None, alias="paymentStatus")
    payment_method: Optional[str] = Field(None, alias="paymentMethod")
    tracking_number: Optional[str] = Field(None, alias="trackingNumber")


class AddressBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = "home"
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    country: str = "India"
    is_default: bool = Field(False, alias="isDefault")


def _user_summary(user: dict) -> dict:
    return {
        "id": user["id"],
        "name": user["name"],
        "email": user["email"],
        "role": user["role"],
        "phone": user.get("phone"),
        "address": user.get("address"),
        "emailVerified": user.get("email_verified", False),
    }


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "Little Treasures API running"}


@app.get("/api/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["collections"] = database.db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


@app.get("/api/health")
def health():
    return {
        "status": "OK",
        "timestamp": database.utcnow().isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
    }


# ----------------------- OTP -----------------------
@app.post("/api/send-otp")
def send_otp(body: SendOTPBody):
    accounts.issue_otp(body.email, body.type)
    return {"message": "OTP sent successfully to your email.", "email": body.email}


@app.post("/api/verify-otp")
def verify_otp(body: VerifyOTPBody):
    accounts.verify_otp(body.email, body.otp, body.type)
    return {"message": "OTP verified successfully.", "verified": True}


# ----------------------- Customer auth -----------------------
@app.post("/api/user/register", status_code=201)
def register(body: RegisterBody):
    user = accounts.register_user(body.model_dump(exclude={"otp"}), body.otp)
    token = issue_token(user["id"], "user")
    return {"message": "User registered successfully", "token": token, "user": _user_summary(user)}


@app.post("/api/user/login")
def user_login(body: UserLoginBody):
    user = accounts.authenticate_user(body.email, body.login_type, password=body.password, otp=body.otp)
    token = issue_token(user["id"], "user")
    return {"message": "Login successful", "token": token, "user": _user_summary(user)}


@app.post("/api/user/reset-password")
def reset_password(body: ResetPasswordBody):
    accounts.reset_password(body.email, body.otp, body.new_password)
    return {"message": "Password reset successfully"}


# ----------------------- Admin auth -----------------------
@app.post("/api/admin/login")
def admin_login(body: AdminLoginBody):
    admin = accounts.authenticate_admin(body.email, body.password)
    token = issue_token(admin["id"], "admin")
    return {
        "message": "Admin login successful",
        "token": token,
        "admin": {
            "id": admin["id"],
            "username": admin["username"],
            "email": admin["email"],
            "role": admin["role"],
            "permissions": admin.get("permissions", []),
        },
    }


# ----------------------- Products -----------------------
@app.get("/api/products")
def list_products(category: Optional[str] = None, featured: Optional[bool] = None, search: Optional[str] = None,
                  sort: Optional[str] = None, limit: Optional[int] = None):
    return catalog.list_products(category=category, featured=featured, search=search, sort=sort, limit=limit)


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    return catalog.get_product(product_id)


@app.post("/api/products", status_code=201)
def create_product(
    name: str = Form(...),
    price: float = Form(...),
    category: str = Form(...),
    stock: int = Form(0),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    featured: bool = Form(False),
    images: Optional[List[UploadFile]] = File(None),
    admin=Depends(get_current_admin),
):
    urls = save_images(images)
    try:
        product = catalog.create_product(
            {
                "name": name,
                "price": price,
                "category": category,
                "stock": stock,
                "description": description,
                "tags": tags,
                "featured": featured,
            },
            images=urls,
        )
    except AppError:
        delete_images(urls)
        raise
    return {"message": "Product added successfully", "product": product}


@app.put("/api/products/{product_id}")
def update_product(
    product_id: str,
    name: Optional[str] = Form(None),
    price: Optional[float] = Form(None),
    category: Optional[str] = Form(None),
    stock: Optional[int] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    featured: Optional[bool] = Form(None),
    remove_images: Optional[str] = Form(None, alias="removeImages"),
    images: Optional[List[UploadFile]] = File(None),
    admin=Depends(get_current_admin),
):
    to_remove = []
    if remove_images:
        try:
            to_remove = json.loads(remove_images)
        except ValueError:
            raise ValidationError("removeImages must be a JSON list.")
        if not isinstance(to_remove, list):
            raise ValidationError("removeImages must be a JSON list.")
    catalog.get_product(product_id)
    urls = save_images(images)
    try:
        product = catalog.update_product(
            product_id,
            {
                "name": name,
                "price": price,
                "category": category,
                "stock": stock,
                "description": description,
                "tags": tags,
                "featured": featured,
            },
            new_images=urls,
            remove_images=to_remove,
        )
    except AppError:
        delete_images(urls)
        raise
    return {"message": "Product updated successfully", "product": product}


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, admin=Depends(get_current_admin)):
    catalog.delete_product(product_id)
    return {"message": "Product deleted successfully"}


@app.post("/api/init-data")
def init_data():
    created = catalog.seed_products()
    if not created:
        return {"message": "Data already exists"}
    return {"message": "Sample data created successfully", "created": created}


# ----------------------- Orders -----------------------
@app.post("/api/create-order", status_code=201)
def create_order(body: CreateOrderBody):
    order = orders.place_order(
        body.customer_info,
        body.items,
        payment_method=body.payment_method,
        notes=body.notes,
        user_id=body.user_id,
    )
    return {"success": True, "order": order, "message": "Order created successfully!"}


@app.get("/api/orders")
def list_orders(status: Optional[str] = None, page: int = 1, limit: int = 20, admin=Depends(get_current_admin)):
    return orders.list_orders(status=status, page=page, limit=limit)


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, admin=Depends(get_current_admin)):
    return orders.get_order(order_id)


@app.put("/api/orders/{order_id}")
def update_order(order_id: str, body: OrderUpdateBody, admin=Depends(get_current_admin)):
    order = orders.update_order(
        order_id,
        status=body.status,
        payment_status=body.payment_status,
        payment_method=body.payment_method,
        tracking_number=body.tracking_number,
    )
    return {"message": "Order updated successfully", "order": order}


# ----------------------- Customer profile -----------------------
@app.get("/api/user/profile")
def get_profile(user=Depends(get_current_user)):
    return {"user": profiles.get_profile(user)}


@app.put("/api/user/profile")
def update_profile(
    name: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    date_of_birth: Optional[str] = Form(None, alias="dateOfBirth"),
    gender: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    user=Depends(get_current_user),
):
    avatar_url = None
    if avatar is not None:
        saved = save_images([avatar], field="avatar", max_files=1)
        avatar_url = saved[0] if saved else None
    try:
        updated = profiles.update_profile(
            user, name=name, phone=phone, address=address, date_of_birth=date_of_birth, gender=gender,
            avatar=avatar_url,
        )
    except AppError:
        delete_images([avatar_url] if avatar_url else [])
        raise
    return {"message": "Profile updated successfully", "user": updated}


@app.post("/api/user/addresses")
def add_address(body: AddressBody, user=Depends(get_current_user)):
    addresses = profiles.add_address(user, body.model_dump())
    return {"message": "Address added successfully", "addresses": addresses}


@app.post("/api/user/wishlist/{product_id}")
def add_to_wishlist(product_id: str, user=Depends(get_current_user)):
    if profiles.add_to_wishlist(user, product_id):
        return {"message": "Product added to wishlist"}
    return {"message": "Product already in wishlist"}


@app.delete("/api/user/wishlist/{product_id}")
def remove_from_wishlist(product_id: str, user=Depends(get_current_user)):
    profiles.remove_from_wishlist(user, product_id)
    return {"message": "Product removed from wishlist"}


@app.get("/api/user/orders")
def user_orders(user=Depends(get_current_user)):
    return {"orders": orders.list_user_orders(user)}


# ----------------------- Admin -----------------------
@app.get("/api/dashboard-stats")
def dashboard_stats(admin=Depends(get_current_admin)):
    return analytics.dashboard_stats()


@app.get("/api/admin/users")
def admin_users(search: Optional[str] = None, status: Optional[str] = None, page: int = 1, limit: int = 20,
                admin=Depends(get_current_admin)):
    return profiles.list_users(search=search, status=status, page=page, limit=limit)


@app.patch("/api/admin/users/{user_id}/toggle-status")
def toggle_user_status(user_id: str, admin=Depends(get_current_admin)):
    user = profiles.toggle_user_status(user_id)
    state = "activated" if user["is_active"] else "deactivated"
    return {"message": f"User {state} successfully.", "user": user}


@app.get("/api/analytics/sales")
def sales_analytics(period: Optional[str] = None, admin=Depends(get_current_admin)):
    return analytics.sales_analytics(period)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
