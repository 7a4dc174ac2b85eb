from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils.text import slugify


class Listing(models.Model):
    """A host's vehicle offered for peer-to-peer rental."""

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="listings",
    )
    make = models.CharField(max_length=60)
    model = models.CharField(max_length=60)
    year = models.PositiveSmallIntegerField(null=True, blank=True)
    daily_price_cad = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        validators=[MinValueValidator(0)],
        default=0,
    )
    pickup_location = models.CharField(max_length=255, blank=True, default="")
    city = models.CharField(max_length=60, default="Edmonton")
    is_active = models.BooleanField(default=True)
    slug = models.SlugField(max_length=180, unique=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def clean(self):
        if not self.make or not self.model:
            raise ValidationError("Make and model are required")
        if self.daily_price_cad and self.daily_price_cad > 10000:
            raise ValidationError("Unreasonable price")

    def save(self, *args, **kwargs):
        if not self.slug:
            base = slugify(self.display_name)[:120] or "vehicle"
            count = type(self).objects.count() + 1
            self.slug = f"{base}-{self.owner_id or 'u'}-{count}"
        super().save(*args, **kwargs)

    @property
    def display_name(self) -> str:
        parts = [str(self.year) if self.year else "", self.make, self.model]
        return " ".join(part for part in parts if part)

    def __str__(self) -> str:
        return f"{self.display_name} ({self.slug})"
