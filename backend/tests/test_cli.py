from sqlalchemy import update

from stockcore.models import Product


def test_audit_passes_when_ledger_matches(app, db_session, product_a, product_b):
    result = app.test_cli_runner().invoke(args=["stock", "audit"])
    assert result.exit_code == 0
    assert "2 product(s) checked, 0 mismatch(es)" in result.output


def test_audit_fails_on_mismatch(app, db_session, product_a):
    db_session.execute(update(Product).where(Product.id == product_a.id).values(quantity=3))
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["stock", "audit", "--product-id", str(product_a.id)])
    assert result.exit_code == 1
    assert "FAIL" in result.output


def test_audit_unknown_product(app, db_session):
    result = app.test_cli_runner().invoke(args=["stock", "audit", "--product-id", "999"])
    assert result.exit_code == 1


def test_low_stock_lists_products(app, db_session, product_a, product_b):
    result = app.test_cli_runner().invoke(args=["stock", "low-stock"])
    assert result.exit_code == 0
    assert product_b.sku in result.output
