import uuid
from django.db import models


class Product(models.Model):
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True, default="")
    # Whole currency units (HUF has no minor unit in practice)
    price = models.PositiveIntegerField(default=0)
    # PositiveIntegerField adds a CHECK (stock >= 0) on every backend we use
    stock = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "products"

    def __str__(self):
        return f"{self.name} (stock={self.stock})"


class Invoice(models.Model):
    customer_name = models.CharField(max_length=200)
    customer_email = models.EmailField()
    customer_phone_number = models.CharField(max_length=50, blank=True, default="")
    customer_zip_code = models.CharField(max_length=20, blank=True, default="")
    customer_country = models.CharField(max_length=100, blank=True, default="")
    customer_city = models.CharField(max_length=100, blank=True, default="")
    customer_street = models.CharField(max_length=200, blank=True, default="")
    creation_date = models.DateTimeField()
    payment_method = models.CharField(max_length=50, default="Barion")

    class Meta:
        db_table = "invoices"


class ShippingAddress(models.Model):
    name = models.CharField(max_length=200)
    email = models.EmailField()
    phone_number = models.CharField(max_length=50, blank=True, default="")
    zip_code = models.CharField(max_length=20, blank=True, default="")
    country = models.CharField(max_length=100, blank=True, default="")
    city = models.CharField(max_length=100, blank=True, default="")
    street = models.CharField(max_length=200, blank=True, default="")

    class Meta:
        db_table = "shipping_addresses"


class OrderModel(models.Model):
    # UUID PK exposed in the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Status(models.TextChoices):
        PROCESSING = "PROCESSING"
        SHIPPED = "SHIPPED"
        DELIVERED = "DELIVERED"
        CANCELLED = "CANCELLED"

    status = models.CharField(max_length=32, choices=Status.choices, default=Status.PROCESSING)
    order_date = models.DateTimeField()
    # Authoritative guard: one order per gateway payment
    payment_id = models.CharField(max_length=64, unique=True)
    total = models.PositiveIntegerField(default=0)
    currency = models.CharField(max_length=3, default="HUF")
    shipping_address = models.OneToOneField(ShippingAddress, on_delete=models.PROTECT, related_name="order")
    invoice = models.OneToOneField(Invoice, on_delete=models.PROTECT, related_name="order")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "orders"
        ordering = ["-order_date"]


class OrderItemModel(models.Model):
    order = models.ForeignKey(OrderModel, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="order_items")
    amount = models.PositiveIntegerField()
    ordered_price = models.PositiveIntegerField()

    class Meta:
        db_table = "order_items"


class PaymentIntent(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING"
        SUCCEEDED = "SUCCEEDED"
        NOT_SUCCEEDED = "NOT_SUCCEEDED"

    payment_id = models.CharField(max_length=64, unique=True)
    payment_request_id = models.CharField(max_length=64)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    total = models.PositiveIntegerField(default=0)
    currency = models.CharField(max_length=3, default="HUF")
    # Reservations and customer as captured at initiation
    snapshot = models.JSONField(default=dict)
    created_at = models.DateTimeField()
    finalized_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "payment_intents"
        indexes = [models.Index(fields=["status", "created_at"], name="payment_intent_status_idx")]


class IdempotencyKey(models.Model):
    key = models.CharField(max_length=200, primary_key=True)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
