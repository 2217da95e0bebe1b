import argparse
import sys

from sqlmodel import Session, select

# Import all database models
from db_models import User, Category, Testimonial, NewsItem

# Import all database "add" functions and the engine
from database import (
    engine,
    create_db_and_tables,
    add_user,
    add_record,
    add_product,
    get_user_by_email,
    update_user,
)

# Import the password hashing function
from auth import hash_password

# --- Sample Data Lists ---

ADMIN_ACCOUNT = ("admin@afghangrocery.com", "admin123", "Admin User")
CUSTOMER_ACCOUNT = ("customer@test.com", "customer123", "Test Customer")

SAMPLE_CATEGORIES = [
    {"name": "Rice & Grains", "name_ps": "وريجې او غلې", "name_fa": "برنج و غلات", "name_de": "Reis & Getreide", "name_fr": "Riz et Céréales", "icon": "🌾"},
    {"name": "Spices", "name_ps": "مصالحې", "name_fa": "ادویه", "name_de": "Gewürze", "name_fr": "Épices", "icon": "🌶️"},
    {"name": "Dried Fruits", "name_ps": "وچ میوې", "name_fa": "میوه خشک", "name_de": "Trockenfrüchte", "name_fr": "Fruits Secs", "icon": "🥜"},
    {"name": "Nuts", "name_ps": "مغزونه", "name_fa": "آجیل", "name_de": "Nüsse", "name_fr": "Noix", "icon": "🌰"},
    {"name": "Oils & Ghee", "name_ps": "غوړ او روغن", "name_fa": "روغن و کره", "name_de": "Öle & Ghee", "name_fr": "Huiles & Ghee", "icon": "🫗"},
    {"name": "Tea & Coffee", "name_ps": "چای او قهوه", "name_fa": "چای و قهوه", "name_de": "Tee & Kaffee", "name_fr": "Thé & Café", "icon": "☕"},
    {"name": "Sweets", "name_ps": "خواږه", "name_fa": "شیرینی", "name_de": "Süßigkeiten", "name_fr": "Sucreries", "icon": "🍬"},
    {"name": "Bread & Bakery", "name_ps": "ډوډۍ", "name_fa": "نان و شیرینی", "name_de": "Brot & Gebäck", "name_fr": "Pain & Pâtisserie", "icon": "🥖"},
]

# (category index, product fields)
SAMPLE_PRODUCTS = [
    (0, {"name": "Basmati Rice Premium", "name_ps": "باسماتي وريجې", "name_fa": "برنج باسماتی",
         "description": "Premium quality long-grain basmati rice from Afghanistan",
         "price": 25.99, "original_price": 29.99, "stock": 100, "image": "/images/products/basmati-rice.jpg",
         "unit": "kg", "weight": 5, "is_featured": True}),
    (1, {"name": "Saffron Threads", "name_ps": "زعفران", "name_fa": "زعفران",
         "description": "Authentic Afghan saffron, hand-picked premium quality",
         "price": 89.99, "original_price": 99.99, "stock": 50, "image": "/images/products/saffron.jpg",
         "unit": "gram", "weight": 0.01, "is_featured": True}),
    (2, {"name": "Dried Mulberries", "name_ps": "وچ توت", "name_fa": "توت خشک",
         "description": "Sweet and nutritious dried mulberries",
         "price": 12.99, "stock": 75, "image": "/images/products/mulberries.jpg",
         "unit": "kg", "weight": 0.5, "is_featured": True}),
    (3, {"name": "Almonds", "name_ps": "بادام", "name_fa": "بادام",
         "description": "Fresh Afghan almonds, rich in nutrients",
         "price": 18.99, "stock": 60, "image": "/images/products/almonds.jpg",
         "unit": "kg", "weight": 1, "is_featured": True}),
    (4, {"name": "Pure Ghee", "name_ps": "خالص روغن", "name_fa": "روغن خالص",
         "description": "Traditional Afghan pure ghee",
         "price": 22.99, "stock": 40, "image": "/images/products/ghee.jpg", "unit": "liter", "weight": 1}),
    (5, {"name": "Green Tea", "name_ps": "شین چای", "name_fa": "چای سبز",
         "description": "Premium Afghan green tea",
         "price": 8.99, "stock": 100, "image": "/images/products/green-tea.jpg", "unit": "gram", "weight": 0.25}),
    (3, {"name": "Pistachio", "name_ps": "پسته", "name_fa": "پسته",
         "description": "Roasted and salted Afghan pistachios",
         "price": 24.99, "stock": 45, "image": "/images/products/pistachio.jpg", "unit": "kg", "weight": 0.5}),
    (1, {"name": "Cardamom", "name_ps": "هل", "name_fa": "هل",
         "description": "Aromatic green cardamom pods",
         "price": 15.99, "stock": 80, "image": "/images/products/cardamom.jpg", "unit": "gram", "weight": 0.1}),
]

SAMPLE_TESTIMONIALS = [
    {"user_name": "Ahmad K.", "location": "Hamburg", "rating": 5, "gender": "male",
     "comment": "The saffron tastes exactly like home. Fast delivery too."},
    {"user_name": "Mariam S.", "location": "Frankfurt", "rating": 5, "gender": "female",
     "comment": "Finally a shop with real Afghan basmati rice and dried mulberries."},
    {"user_name": "Farid N.", "location": "Munich", "rating": 4, "gender": "male",
     "comment": "Good prices and friendly support on WhatsApp."},
]

SAMPLE_NEWS = [
    {"title": "Fresh harvest saffron", "subtitle": "Straight from Herat", "tag": "New",
     "description": "This season's saffron has arrived in limited quantities.", "bg_class": "bg-amber", "display_order": 1},
    {"title": "Eid specials", "subtitle": "Sweets and dried fruits", "tag": "Offer",
     "description": "Holiday favourites are back in stock for the season.", "bg_class": "bg-green", "display_order": 2},
]


def seed_database() -> bool:
    """Seeds sample data into an empty database. Returns False when users already exist."""
    create_db_and_tables()

    with Session(engine) as session:
        if session.exec(select(User.id)).first() is not None:
            print("Database already has users, skipping seed.")
            return False

    print("--- 1. Creating Accounts ---")
    email, password, name = ADMIN_ACCOUNT
    add_user(email, hash_password(password), name, role="admin", is_verified=True)
    email, password, name = CUSTOMER_ACCOUNT
    add_user(email, hash_password(password), name, is_verified=True)
    print("Created admin and test customer.")

    print("--- 2. Creating Categories ---")
    categories = [add_record(Category, data) for data in SAMPLE_CATEGORIES]
    print(f"Created {len(categories)} categories.")

    print("--- 3. Creating Products ---")
    for category_index, data in SAMPLE_PRODUCTS:
        add_product({**data, "category_id": categories[category_index].id})
    print(f"Created {len(SAMPLE_PRODUCTS)} products.")

    print("--- 4. Creating Storefront Content ---")
    for data in SAMPLE_TESTIMONIALS:
        add_record(Testimonial, data)
    for data in SAMPLE_NEWS:
        add_record(NewsItem, data)
    print(f"Created {len(SAMPLE_TESTIMONIALS)} testimonials and {len(SAMPLE_NEWS)} news items.")

    print("\n--- Database Seeding Complete! ---")
    print(f"Admin: {ADMIN_ACCOUNT[0]} / {ADMIN_ACCOUNT[1]}")
    print(f"Customer: {CUSTOMER_ACCOUNT[0]} / {CUSTOMER_ACCOUNT[1]}")
    return True


def make_admin(email: str) -> bool:
    create_db_and_tables()
    user = get_user_by_email(email)
    if not user:
        print(f"No user with email {email}")
        return False
    update_user(user.id, {"role": "admin"})
    print(f"{email} is now an admin.")
    return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Seed the Afghan Grocery database")
    parser.add_argument("--make-admin", metavar="EMAIL", help="promote an existing user to admin instead of seeding")
    args = parser.parse_args(argv)

    if args.make_admin:
        return 0 if make_admin(args.make_admin) else 1
    seed_database()
    return 0


if __name__ == "__main__":
    sys.exit(main())
