import base64
import binascii
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import (
    AnyUrl,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


# Characters lxml refuses to put in an XML document.
_XML_ILLEGAL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


def _check_xml_text(value: str) -> None:
    if _XML_ILLEGAL.search(value):
        raise ValueError("text contains characters that cannot appear in XML")


def _check_iso_date(value: str) -> str:
    try:
        if len(value) == 10:
            date.fromisoformat(value)
        else:
            datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValueError(f"{value!r} is not an ISO 8601 date") from exc
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("*")
    @classmethod
    def _xml_safe_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            _check_xml_text(value)
        elif isinstance(value, dict):
            for key, item in value.items():
                _check_xml_text(str(key))
                _check_xml_text(str(item))
        return value


class OrderHeader(CamelModel):
    note: str
    document_currency_code: str
    accounting_cost_code: str
    validity_end_date: str
    quotation_document_reference_id: str
    order_document_reference_id: str
    originator_document_reference_id: str
    contract_type: str
    contract_id: int

    @field_validator("validity_end_date")
    @classmethod
    def _iso_end_date(cls, value: str) -> str:
        return _check_iso_date(value)


class PostalAddress(CamelModel):
    post_box: str
    street_name: str
    additional_street_name: Optional[str] = None
    building_number: str
    department: str
    city_name: str
    postal_zone: str
    country_subentity: str
    country_code: str = Field(min_length=2, max_length=2)


class DeliveryAddress(PostalAddress):
    building_name: str


class Contact(CamelModel):
    telephone: str
    telefax: Optional[str] = None
    email: EmailStr


class Person(CamelModel):
    first_name: str
    middle_name: Optional[str] = None
    family_name: str
    job_title: str


class DeliveryContact(Contact):
    name: str


class Buyer(CamelModel):
    buyer_id: str = Field(min_length=13, max_length=13)
    name: str
    postal_address: PostalAddress
    tax_scheme: str = Field(pattern="^VAT$")
    contact: Contact
    person: Person
    delivery_contact: DeliveryContact


class Seller(CamelModel):
    seller_id: str = Field(min_length=13, max_length=13)
    name: str
    postal_address: PostalAddress
    contact: Contact
    person: Person


class DeliveryPeriod(CamelModel):
    start_date: str
    end_date: str

    @field_validator("start_date", "end_date")
    @classmethod
    def _iso_dates(cls, value: str) -> str:
        return _check_iso_date(value)


class DeliveryParty(CamelModel):
    delivery_party_id: int
    name: str
    telephone: str
    telefax: Optional[str] = None
    email: EmailStr


class Delivery(CamelModel):
    delivery_address: DeliveryAddress
    requested_delivery_period: DeliveryPeriod
    delivery_party: DeliveryParty


class AllowanceCharge(CamelModel):
    charge_indicator: bool
    allowance_charge_reason: str
    amount: Decimal


class MonetaryTotal(CamelModel):
    line_extension_amount: Decimal
    tax_total: Decimal
    allowance_charge: List[AllowanceCharge] = Field(default_factory=list)


class BaseQuantity(CamelModel):
    quantity: Decimal
    unit_code: str


class Item(CamelModel):
    item_id: str
    description: str
    name: str
    properties: Dict[str, str] = Field(default_factory=dict)

    @field_validator("item_id", mode="before")
    @classmethod
    def _item_id_as_text(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class LineItem(CamelModel):
    quantity: Decimal
    total_tax_amount: Decimal
    price: Decimal
    base_quantity: BaseQuantity
    item: Item


class OrderLine(CamelModel):
    note: str
    line_item: LineItem


class Attachment(CamelModel):
    uri: Optional[AnyUrl] = None
    binary_object: Optional[str] = None
    mime_code: Optional[str] = None

    @field_validator("binary_object")
    @classmethod
    def _base64_payload(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            try:
                base64.b64decode(value, validate=True)
            except binascii.Error as exc:
                raise ValueError("binaryObject must be base64 encoded") from exc
        return value

    @model_validator(mode="after")
    def _single_form(self) -> "Attachment":
        if self.uri and self.binary_object:
            raise ValueError("attachment takes either uri or binaryObject, not both")
        if self.binary_object and not self.mime_code:
            raise ValueError("binaryObject requires mimeCode")
        return self


class AdditionalDocumentReference(CamelModel):
    document_type: str
    attachment: Optional[Attachment] = None


class OrderAggregate(CamelModel):
    order: OrderHeader
    buyer: Buyer
    seller: Seller
    delivery: Delivery
    monetary_total: MonetaryTotal
    order_lines: List[OrderLine] = Field(default_factory=list)
    additional_document_reference: List[AdditionalDocumentReference] = Field(
        default_factory=list
    )


class BulkOrderRequest(CamelModel):
    orders: List[OrderAggregate]


class OrderCreatedResponse(CamelModel):
    order_id: int


class BulkOrderResponse(CamelModel):
    order_ids: List[int]
