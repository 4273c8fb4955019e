"""Render an order aggregate as a UBL 2.1 Order document.

The builder is a pure function of the aggregate, the order id and the
timestamp it is given. It does not check for missing fields; optional fields
that are absent are written as empty elements.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Tuple

from lxml import etree

from schemas import (
    AdditionalDocumentReference,
    Contact,
    DeliveryAddress,
    DeliveryPeriod,
    OrderAggregate,
    OrderLine,
    Person,
    PostalAddress,
)

ORDER_NS = "urn:oasis:names:specification:ubl:schema:xsd:Order-2"
CAC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2"
CBC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2"
NSMAP = {None: ORDER_NS, "cac": CAC_NS, "cbc": CBC_NS}

UBL_VERSION_ID = "2.1"
CUSTOMIZATION_ID = "urn:www.cenbii.eu:transaction:biicoretrdm001:ver1.0"
PROFILE_ID = "urn:www.cenbii.eu:profile:BII01:ver1.0"
GLN_SCHEME = {"schemeAgencyID": "9", "schemeID": "GLN"}
TAX_SCHEME = {"schemeID": "UN/ECE 515", "schemeAgencyID": "6"}
COMPANY_ID_SCHEME = {"schemeID": "SE:ORGNR"}


@dataclass(frozen=True)
class OrderDocument:
    xml: str
    total_cost: Decimal
    payable_amount: Decimal
    allowance_total: Decimal
    charge_total: Decimal


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def _cbc(parent: etree._Element, name: str, value: Any = None, **attrs: str) -> etree._Element:
    element = etree.SubElement(parent, f"{{{CBC_NS}}}{name}", attrs)
    element.text = _text(value)
    return element


def _cac(parent: etree._Element, name: str) -> etree._Element:
    return etree.SubElement(parent, f"{{{CAC_NS}}}{name}")


def _country(parent: etree._Element, country_code: str) -> None:
    _cbc(_cac(parent, "Country"), "IdentificationCode", country_code)


def _postal_address(parent: etree._Element, name: str, address: PostalAddress) -> None:
    node = _cac(parent, name)
    _cbc(node, "Postbox", address.post_box)
    _cbc(node, "StreetName", address.street_name)
    _cbc(node, "AdditionalStreetName", address.additional_street_name)
    if isinstance(address, DeliveryAddress):
        _cbc(node, "BuildingName", address.building_name)
    _cbc(node, "BuildingNumber", address.building_number)
    _cbc(node, "Department", address.department)
    _cbc(node, "CityName", address.city_name)
    _cbc(node, "PostalZone", address.postal_zone)
    _cbc(node, "CountrySubentity", address.country_subentity)
    _country(node, address.country_code)


def _contact(
    parent: etree._Element,
    contact: Contact,
    name: Optional[str] = None,
    tag: str = "Contact",
) -> None:
    node = _cac(parent, tag)
    if name is not None:
        _cbc(node, "Name", name)
    _cbc(node, "Telephone", contact.telephone)
    _cbc(node, "Telefax", contact.telefax)
    _cbc(node, "ElectronicMail", contact.email)


def _person(parent: etree._Element, person: Person) -> None:
    node = _cac(parent, "Person")
    _cbc(node, "FirstName", person.first_name)
    _cbc(node, "FamilyName", person.family_name)
    _cbc(node, "MiddleName", person.middle_name)
    _cbc(node, "JobTitle", person.job_title)


def _legal_entity(parent: etree._Element, name: str, company_id: str, address: PostalAddress) -> None:
    node = _cac(parent, "PartyLegalEntity")
    _cbc(node, "RegistrationName", name)
    _cbc(node, "CompanyID", company_id, **COMPANY_ID_SCHEME)
    registration = _cac(node, "RegistrationAddress")
    _cbc(registration, "CityName", address.city_name)
    _cbc(registration, "CountrySubentity", address.country_subentity)
    _country(registration, address.country_code)


def _period(parent: etree._Element, name: str, period: DeliveryPeriod) -> None:
    node = _cac(parent, name)
    _cbc(node, "StartDate", period.start_date)
    _cbc(node, "EndDate", period.end_date)


def _header(root: etree._Element, aggregate: OrderAggregate, order_id: int, now: datetime) -> None:
    header = aggregate.order
    _cbc(root, "UBLVersionID", UBL_VERSION_ID)
    _cbc(root, "CustomizationID", CUSTOMIZATION_ID)
    _cbc(root, "ProfileID", PROFILE_ID, schemeAgencyID="BII", schemeID="Profile")
    _cbc(root, "ID", order_id)
    _cbc(root, "IssueDate", now.date().isoformat())
    _cbc(root, "IssueTime", now.strftime("%H:%M:%S"))
    _cbc(root, "Note", header.note)
    _cbc(root, "DocumentCurrencyCode", header.document_currency_code)
    _cbc(root, "AccountingCostCode", header.accounting_cost_code)
    _cbc(_cac(root, "ValidityPeriod"), "EndDate", header.validity_end_date)
    _cbc(_cac(root, "QuotationDocumentReference"), "ID", header.quotation_document_reference_id)
    _cbc(_cac(root, "OrderDocumentReference"), "ID", header.order_document_reference_id)
    _cbc(
        _cac(root, "OriginatorDocumentReference"),
        "ID",
        header.originator_document_reference_id,
    )


def _document_reference(root: etree._Element, position: int, reference: AdditionalDocumentReference) -> None:
    node = _cac(root, "AdditionalDocumentReference")
    _cbc(node, "ID", f"doc{position}")
    _cbc(node, "DocumentType", reference.document_type)
    attachment = reference.attachment
    if attachment is None:
        return
    if attachment.uri:
        external = _cac(_cac(node, "Attachment"), "ExternalReference")
        _cbc(external, "URI", attachment.uri)
    elif attachment.binary_object and attachment.mime_code:
        _cbc(
            _cac(node, "Attachment"),
            "EmbeddedDocumentBinaryObject",
            attachment.binary_object,
            mimeCode=attachment.mime_code,
        )


def _buyer(root: etree._Element, aggregate: OrderAggregate) -> None:
    buyer = aggregate.buyer
    address = buyer.postal_address
    party = _cac(_cac(root, "BuyerCustomerParty"), "Party")
    _cbc(party, "EndpointID", buyer.buyer_id, **GLN_SCHEME)
    _cbc(_cac(party, "PartyIdentification"), "ID", buyer.buyer_id, **GLN_SCHEME)
    _cbc(_cac(party, "PartyName"), "Name", buyer.name)
    _postal_address(party, "PostalAddress", address)

    tax_scheme = _cac(party, "PartyTaxScheme")
    registration = _cac(tax_scheme, "RegistrationAddress")
    _cbc(registration, "CityName", address.city_name)
    _country(registration, address.country_code)
    _cbc(_cac(tax_scheme, "TaxScheme"), "ID", buyer.tax_scheme, **TAX_SCHEME)

    _legal_entity(party, buyer.name, buyer.buyer_id, address)
    _contact(party, buyer.contact)
    _person(party, buyer.person)

    delivery_contact = buyer.delivery_contact
    _contact(party, delivery_contact, name=delivery_contact.name, tag="DeliveryContact")


def _seller(root: etree._Element, aggregate: OrderAggregate) -> None:
    seller = aggregate.seller
    party = _cac(_cac(root, "SellerSupplierParty"), "Party")
    _cbc(party, "EndpointID", seller.seller_id, **GLN_SCHEME)
    _cbc(_cac(party, "PartyIdentification"), "ID", seller.seller_id)
    _cbc(_cac(party, "PartyName"), "Name", seller.name)
    _postal_address(party, "PostalAddress", seller.postal_address)
    _legal_entity(party, seller.name, seller.seller_id, seller.postal_address)
    _contact(party, seller.contact)
    _person(party, seller.person)

    originator = _cac(_cac(root, "OriginatorCustomerParty"), "Party")
    _cbc(_cac(originator, "PartyIdentification"), "ID", seller.seller_id, **GLN_SCHEME)
    _cbc(_cac(originator, "PartyName"), "Name", seller.name)
    _contact(originator, seller.contact)
    _person(originator, seller.person)


def _delivery(root: etree._Element, aggregate: OrderAggregate) -> None:
    delivery = aggregate.delivery
    node = _cac(root, "Delivery")
    _postal_address(_cac(node, "DeliveryLocation"), "Address", delivery.delivery_address)
    _period(node, "RequestedDeliveryPeriod", delivery.requested_delivery_period)

    party = delivery.delivery_party
    party_node = _cac(node, "DeliveryParty")
    _cbc(_cac(party_node, "PartyIdentification"), "ID", party.delivery_party_id, **GLN_SCHEME)
    _cbc(_cac(party_node, "PartyName"), "Name", party.name)
    _contact(party_node, party, name=party.name)


def _allowance_charges(root: etree._Element, aggregate: OrderAggregate) -> Tuple[Decimal, Decimal]:
    currency = aggregate.order.document_currency_code
    allowance_total = Decimal("0")
    charge_total = Decimal("0")
    for entry in aggregate.monetary_total.allowance_charge:
        node = _cac(root, "AllowanceCharge")
        _cbc(node, "ChargeIndicator", entry.charge_indicator)
        _cbc(node, "AllowanceChargeReason", entry.allowance_charge_reason)
        _cbc(node, "Amount", entry.amount, currencyID=currency)
        if entry.charge_indicator is True:
            charge_total += entry.amount
        else:
            allowance_total += entry.amount
    return allowance_total, charge_total


def _totals(
    root: etree._Element,
    aggregate: OrderAggregate,
    allowance_total: Decimal,
    charge_total: Decimal,
    payable_amount: Decimal,
) -> None:
    currency = aggregate.order.document_currency_code
    totals = aggregate.monetary_total
    _cbc(_cac(root, "TaxTotal"), "TaxAmount", totals.tax_total, currencyID=currency)

    node = _cac(root, "AnticipatedMonetaryTotal")
    _cbc(node, "LineExtensionAmount", totals.line_extension_amount, currencyID=currency)
    _cbc(node, "AllowanceTotalAmount", allowance_total, currencyID=currency)
    _cbc(node, "ChargeTotalAmount", charge_total, currencyID=currency)
    _cbc(node, "PayableAmount", payable_amount, currencyID=currency)


def _order_line(root: etree._Element, aggregate: OrderAggregate, line_id: int, line: OrderLine) -> None:
    currency = aggregate.order.document_currency_code
    line_item = line.line_item
    unit_code = line_item.base_quantity.unit_code

    node = _cac(root, "OrderLine")
    _cbc(node, "Note", line.note)
    item_node = _cac(node, "LineItem")
    _cbc(item_node, "ID", line_id)
    _cbc(item_node, "Quantity", line_item.quantity, unitCode=unit_code)
    _cbc(
        item_node,
        "LineExtensionAmount",
        line_item.quantity * line_item.price,
        currencyID=currency,
    )
    _cbc(item_node, "TotalTaxAmount", line_item.total_tax_amount, currencyID=currency)
    _period(
        _cac(item_node, "Delivery"),
        "RequestedDeliveryPeriod",
        aggregate.delivery.requested_delivery_period,
    )

    price = _cac(item_node, "Price")
    _cbc(price, "PriceAmount", line_item.price, currencyID=currency)
    _cbc(price, "BaseQuantity", line_item.base_quantity.quantity, unitCode=unit_code)

    item = line_item.item
    product = _cac(item_node, "Item")
    _cbc(product, "Description", item.description)
    _cbc(product, "Name", item.name)
    _cbc(_cac(product, "SellersItemIdentification"), "ID", item.item_id)
    for key, value in item.properties.items():
        prop = _cac(product, "AdditionalItemProperty")
        _cbc(prop, "Name", key)
        _cbc(prop, "Value", value)


def build_order_document(aggregate: OrderAggregate, order_id: int, now: datetime) -> OrderDocument:
    """Render ``aggregate`` and compute its totals.

    ``payable_amount`` is the line extension amount less allowances plus
    charges; ``total_cost`` adds the tax total on top of that.
    """
    root = etree.Element(f"{{{ORDER_NS}}}Order", nsmap=NSMAP)
    _header(root, aggregate, order_id, now)
    for position, reference in enumerate(aggregate.additional_document_reference, start=1):
        _document_reference(root, position, reference)

    contract = _cac(root, "Contract")
    _cbc(contract, "ID", aggregate.order.contract_id)
    _cbc(contract, "ContractType", aggregate.order.contract_type)

    _buyer(root, aggregate)
    _seller(root, aggregate)
    _delivery(root, aggregate)

    allowance_total, charge_total = _allowance_charges(root, aggregate)
    payable_amount = aggregate.monetary_total.line_extension_amount - allowance_total + charge_total
    _totals(root, aggregate, allowance_total, charge_total, payable_amount)

    for line_id, line in enumerate(aggregate.order_lines, start=1):
        _order_line(root, aggregate, line_id, line)

    xml = etree.tostring(
        root, xml_declaration=True, encoding="UTF-8", pretty_print=True
    ).decode("utf-8")
    return OrderDocument(
        xml=xml,
        total_cost=payable_amount + aggregate.monetary_total.tax_total,
        payable_amount=payable_amount,
        allowance_total=allowance_total,
        charge_total=charge_total,
    )
