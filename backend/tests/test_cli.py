from storefront.models import City, DiscountCode, Product, ProductVariant, ShippingMethod, User
from storefront.services import session_service


def test_seed_demo_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    for _ in range(2):
        result = runner.invoke(args=["catalog", "seed-demo"])
        assert result.exit_code == 0, result.output

    assert db_session.query(City).count() == 3
    assert db_session.query(ShippingMethod).count() == 2
    assert db_session.query(Product).count() == 2
    assert db_session.query(ProductVariant).count() == 6


def test_create_discount(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "discounts", "create",
        "--code", "welcome10", "--type", "PERCENT", "--value", "10",
        "--usage-limit", "100", "--valid-until", "2030-01-01T00:00:00Z",
    ])
    assert result.exit_code == 0, result.output

    discount = db_session.query(DiscountCode).one()
    assert discount.code == "WELCOME10"
    assert discount.usage_limit == 100
    assert discount.used_count == 0


def test_percent_value_out_of_range(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["discounts", "create", "--code", "BIG", "--type", "PERCENT", "--value", "150"])
    assert result.exit_code != 0
    assert db_session.query(DiscountCode).count() == 0


def test_create_user_and_issue_token(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["users", "create", "--email", "Admin@Store.test", "--name", "Admin", "--role", "ADMIN"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(args=["users", "issue-token", "--email", "admin@store.test"])
    assert result.exit_code == 0, result.output

    user = session_service.validate_session(result.output.strip())
    assert user is not None
    assert user.is_admin
    assert db_session.query(User).count() == 1
