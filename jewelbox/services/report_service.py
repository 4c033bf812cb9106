"""
Reports: bill invoices, customer debt statements and CSV exports.
"""
import csv
import io
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from io import BytesIO
from typing import Any, Dict, List, Mapping, Optional, Tuple
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER

from jewelbox.exceptions import ValidationError
from jewelbox.models import Bill, Customer
from jewelbox.utils.formatters import money_pdf, date_in, datetime_in, num_in, amount_in_words

GOLD = colors.HexColor('#B8860B')

PAYMENT_MODE_LABELS = {
    'cash': 'Cash',
    'card': 'Card',
    'upi': 'UPI',
    'bank_transfer': 'Bank Transfer',
}

BILL_TERMS = (
    'Goods once sold will not be returned or exchanged.',
    'Gold and diamond rates are subject to market fluctuations.',
    'Please verify the weight and quality at the time of purchase.',
    'This is a computer generated bill.',
)


def business_info_from_config(config: Mapping[str, Any]) -> Dict[str, str]:
    """Shop details printed on every document, from app config."""
    return {
        'name': config.get('BUSINESS_NAME', ''),
        'address': config.get('BUSINESS_ADDRESS', ''),
        'phone': config.get('BUSINESS_PHONE', ''),
        'email': config.get('BUSINESS_EMAIL', ''),
        'gstin': config.get('BUSINESS_GSTIN', ''),
    }


def _pdf_text(text: str) -> str:
    """Escape for Paragraph markup; Helvetica has no rupee glyph."""
    return escape(text or '').replace('₹', 'Rs. ')


def generate_debt_statement_pdf(customer: Customer, business_info: Dict[str, Any]) -> BytesIO:
    """
    Render a customer's debt statement: contact details, balances and the
    full payment history.
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.6*inch,
        leftMargin=0.6*inch,
        topMargin=0.6*inch,
        bottomMargin=0.6*inch
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'StatementTitle',
        parent=styles['Heading1'],
        fontSize=20,
        textColor=GOLD,
        spaceAfter=6,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )
    header_style = ParagraphStyle(
        'StatementHeader',
        parent=styles['Normal'],
        fontSize=9,
        textColor=colors.HexColor('#666666'),
        alignment=TA_CENTER,
        spaceAfter=4
    )
    cell_style = ParagraphStyle('Cell', parent=styles['Normal'], fontSize=8, leading=10)

    # 1. Business header
    elements.append(Paragraph(_pdf_text(business_info.get('name', '')), title_style))
    if business_info.get('address'):
        elements.append(Paragraph(_pdf_text(business_info['address']), header_style))
    if business_info.get('phone'):
        elements.append(Paragraph(f"Tel: {_pdf_text(business_info['phone'])}", header_style))
    elements.append(Spacer(1, 0.2*inch))
    elements.append(Paragraph('<b>CUSTOMER DEBT SUMMARY</b>', header_style))
    elements.append(Spacer(1, 0.2*inch))

    # 2. Customer details
    details = [
        ['Name:', customer.name],
        ['Phone:', customer.phone],
    ]
    if customer.email:
        details.append(['Email:', customer.email])
    if customer.address:
        details.append(['Address:', customer.address])
    details.append(['Statement date:', date_in(datetime.now())])

    details_table = Table(details, colWidths=[1.5*inch, 4.5*inch])
    details_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#333333')),
    ]))
    elements.append(details_table)
    elements.append(Spacer(1, 0.25*inch))

    # 3. Financial summary
    debt = Decimal(customer.total_debt or 0)
    summary = [
        ['Financial Summary', ''],
        ['Total Purchases', money_pdf(customer.total_purchases)],
        ['Total Paid', money_pdf(customer.total_paid)],
        ['Bills', str(customer.bill_count or 0)],
        ['Outstanding Debt', money_pdf(debt)],
    ]
    summary_table = Table(summary, colWidths=[4*inch, 2*inch])
    summary_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), GOLD),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('ALIGN', (1, 1), (1, -1), 'RIGHT'),
        ('TEXTCOLOR', (1, -1), (1, -1), colors.HexColor('#dc2626') if debt > 0 else colors.HexColor('#16a34a')),
        ('LINEBELOW', (0, 1), (-1, -2), 0.5, colors.HexColor('#DDDDDD')),
    ]))
    elements.append(summary_table)
    elements.append(Spacer(1, 0.3*inch))

    # 4. Payment & debt history
    history = [['Date', 'Description', 'Paid', 'Change', 'Debt Before', 'Debt After']]
    for entry in customer.payment_history:
        description = entry.note or ''
        if entry.bill_number and entry.bill_number not in description:
            description = f"{entry.bill_number}: {description}"
        history.append([
            datetime_in(entry.date),
            Paragraph(_pdf_text(description), cell_style),
            money_pdf(entry.amount_paid),
            money_pdf(entry.debt_added),
            money_pdf(entry.debt_before),
            money_pdf(entry.debt_after),
        ])

    if len(history) == 1:
        history.append(['-', 'No ledger entries', '-', '-', '-', '-'])

    history_table = Table(
        history,
        colWidths=[1.1*inch, 2.3*inch, 0.9*inch, 0.9*inch, 0.9*inch, 0.9*inch],
        repeatRows=1
    )
    history_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), GOLD),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 8),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('ALIGN', (2, 0), (-1, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#DDDDDD')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#FAF9F6')]),
    ]))
    elements.append(history_table)

    doc.build(elements)
    buffer.seek(0)
    return buffer


def export_debts_csv(session) -> str:
    """All active customers, highest debt first."""
    customers = session.query(Customer).filter(
        Customer.is_active.is_(True)
    ).order_by(Customer.total_debt.desc(), Customer.name).all()

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow([
        'customer_name',
        'phone',
        'email',
        'total_purchases',
        'total_paid',
        'outstanding_debt',
        'bill_count',
        'customer_since',
    ])
    for customer in customers:
        writer.writerow([
            customer.name,
            customer.phone,
            customer.email or '',
            f"{Decimal(customer.total_purchases or 0):.2f}",
            f"{Decimal(customer.total_paid or 0):.2f}",
            f"{Decimal(customer.total_debt or 0):.2f}",
            customer.bill_count or 0,
            customer.created_at.strftime('%Y-%m-%d') if customer.created_at else '',
        ])
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Bill invoice
# ---------------------------------------------------------------------------

def _dec(value) -> Decimal:
    return Decimal(str(value or 0))


def _charge_amount(charge: Optional[dict], base: Decimal) -> Decimal:
    if not charge:
        return Decimal('0')
    if charge.get('type') == 'percentage':
        return base * _dec(charge.get('value')) / 100
    return _dec(charge.get('value'))


def _charge_label(charge: Optional[dict], base_name: str) -> str:
    if not charge:
        return ''
    if charge.get('type') == 'percentage':
        return f"{num_in(charge.get('value'))}% of {base_name}"
    return 'Fixed'


def _bill_lines(bill: Bill) -> List[Tuple[dict, int]]:
    """(snapshot, quantity) per product line; single-product bills have no items."""
    if bill.items:
        return [(item.product_snapshot, item.quantity or 1) for item in bill.items]
    if bill.product_snapshot:
        return [(bill.product_snapshot, 1)]
    return []


def _item_rows(snapshot: dict, quantity: int) -> Tuple[List[list], List[int]]:
    """Price table rows for one bill line and the indexes of its bold rows."""
    rows = [['Description', 'Details', 'Amount']]
    bold = []

    def add(description, details='', amount='', strong=False):
        if strong:
            bold.append(len(rows))
        rows.append([description, details, amount])

    metals = snapshot.get('metal_composition') or []
    if metals:
        add('Metal Composition', strong=True)
        for comp in metals:
            subtotal = _dec(comp.get('subtotal'))
            add(
                f"  {comp.get('variant_name', '')}",
                f"{num_in(comp.get('weight_in_grams'))} g x {money_pdf(comp.get('price_per_gram'))}/g",
                money_pdf(subtotal),
            )
            wastage = comp.get('component_wastage')
            if wastage and _dec(wastage.get('value')) > 0:
                add('    Wastage', _charge_label(wastage, 'subtotal'), money_pdf(_charge_amount(wastage, subtotal)))
        add('Metal Total', '', money_pdf(snapshot.get('metal_total')), strong=True)

    gemstones = snapshot.get('gemstone_composition') or []
    if gemstones:
        add('Gemstone Composition', strong=True)
        for comp in gemstones:
            subtotal = _dec(comp.get('subtotal'))
            count = comp.get('quantity') or 1
            pieces = f' x {count}' if count > 1 else ''
            add(
                f"  {comp.get('variant_name', '')}",
                f"{num_in(comp.get('weight_in_carats'))} ct{pieces} x {money_pdf(comp.get('price_per_carat'))}/ct",
                money_pdf(subtotal),
            )
            wastage = comp.get('component_wastage')
            if wastage and _dec(wastage.get('value')) > 0:
                add('    Wastage', _charge_label(wastage, 'subtotal'), money_pdf(_charge_amount(wastage, subtotal)))
        add('Gemstone Total', '', money_pdf(snapshot.get('gemstone_total')), strong=True)

    if _dec(snapshot.get('making_charge_amount')) > 0:
        add('Making Charges', _charge_label(snapshot.get('making_charges'), 'material'),
            money_pdf(snapshot.get('making_charge_amount')))
    if _dec(snapshot.get('wastage_charge_amount')) > 0:
        add('Wastage Charges', _charge_label(snapshot.get('product_wastage'), 'material'),
            money_pdf(snapshot.get('wastage_charge_amount')))
    for charge in snapshot.get('other_charges') or []:
        add(charge.get('name', ''), '', money_pdf(charge.get('amount')))

    add('Subtotal', '', money_pdf(snapshot.get('subtotal')), strong=True)
    add(f"GST ({num_in(snapshot.get('gst_percentage'))}%)", '', money_pdf(snapshot.get('gst_amount')))
    item_total = _dec(snapshot.get('total_price')) * quantity
    add(f'Item Total (x{quantity})' if quantity > 1 else 'Item Total', '', money_pdf(item_total), strong=True)
    return rows, bold


def generate_bill_pdf(bill: Bill, business_info: Dict[str, Any]) -> BytesIO:
    """
    Render a bill as a tax invoice.

    Every figure comes from the product snapshots frozen on the bill, so the
    invoice reads the same after later rate changes.
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.6*inch,
        leftMargin=0.6*inch,
        topMargin=0.6*inch,
        bottomMargin=0.6*inch
    )

    elements = []
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'BillShop',
        parent=styles['Heading1'],
        fontSize=22,
        textColor=colors.HexColor('#1a1a1a'),
        spaceAfter=4,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )
    header_style = ParagraphStyle(
        'BillHeader',
        parent=styles['Normal'],
        fontSize=8,
        textColor=colors.HexColor('#888888'),
        alignment=TA_CENTER,
        spaceAfter=2
    )
    heading_style = ParagraphStyle(
        'BillHeading',
        parent=styles['Heading2'],
        fontSize=14,
        alignment=TA_CENTER,
        spaceBefore=8,
        spaceAfter=8
    )
    small_style = ParagraphStyle('BillSmall', parent=styles['Normal'], fontSize=8,
                                 textColor=colors.HexColor('#666666'))
    cell_style = ParagraphStyle('BillCell', parent=styles['Normal'], fontSize=8.5, leading=10)

    # Shop header
    elements.append(Paragraph(_pdf_text(business_info.get('name', '')), title_style))
    if business_info.get('address'):
        elements.append(Paragraph(_pdf_text(business_info['address']), header_style))
    contact = []
    if business_info.get('phone'):
        contact.append(f"Phone: {business_info['phone']}")
    if business_info.get('gstin'):
        contact.append(f"GSTIN: {business_info['gstin']}")
    if contact:
        elements.append(Paragraph(_pdf_text(' | '.join(contact)), header_style))
    elements.append(Paragraph('<b>TAX INVOICE</b>', heading_style))

    # Bill and customer details
    customer = bill.customer or {}
    details = [
        ['Bill Number:', bill.bill_number, 'Date:', datetime_in(bill.created_at)],
        ['Payment:', PAYMENT_MODE_LABELS.get(bill.payment_mode, bill.payment_mode or ''), '', ''],
        ['Customer:', customer.get('name', ''), 'Phone:', customer.get('phone', '')],
    ]
    if customer.get('email'):
        details.append(['Email:', customer['email'], '', ''])
    if customer.get('address'):
        details.append(['Address:', Paragraph(_pdf_text(customer['address']), cell_style), '', ''])
    details_table = Table(details, colWidths=[1.1*inch, 2.6*inch, 0.8*inch, 2.3*inch])
    details_table.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTNAME', (2, 0), (2, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#333333')),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
    ]))
    elements.append(details_table)
    elements.append(Spacer(1, 0.2*inch))

    # One price table per product line
    lines = _bill_lines(bill)
    for index, (snapshot, quantity) in enumerate(lines):
        label = f'Item {index + 1}' if len(lines) > 1 else 'Product Details'
        name = snapshot.get('name', '') + (f' (x{quantity})' if quantity > 1 else '')
        elements.append(Paragraph(
            f"<b>{label}:</b> {_pdf_text(name)} &nbsp; <font color='#888888'>{_pdf_text(snapshot.get('product_code', ''))}</font>",
            cell_style
        ))
        elements.append(Spacer(1, 0.06*inch))

        rows, bold = _item_rows(snapshot, quantity)
        style = [
            ('BACKGROUND', (0, 0), (-1, 0), GOLD),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 8.5),
            ('ALIGN', (2, 0), (2, -1), 'RIGHT'),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#FAFAFA')]),
            ('LINEABOVE', (0, -1), (-1, -1), 1, GOLD),
        ]
        style.extend(('FONTNAME', (0, row), (-1, row), 'Helvetica-Bold') for row in bold)
        item_table = Table(rows, colWidths=[2.6*inch, 2.4*inch, 1.8*inch], repeatRows=1)
        item_table.setStyle(TableStyle(style))
        elements.append(item_table)
        elements.append(Spacer(1, 0.2*inch))

    # Summary
    final_amount = _dec(bill.final_amount)
    amount_paid = _dec(bill.amount_paid)
    summary = []
    discount = bill.discount or {}
    if _dec(discount.get('amount')) > 0:
        discount_label = (f"{num_in(discount.get('value'))}% discount"
                          if discount.get('type') == 'percentage' else 'Flat discount')
        summary.append([f'Discount ({discount_label})', f"- {money_pdf(discount.get('amount'))}"])
    final_row = len(summary)
    summary.append(['FINAL AMOUNT', money_pdf(final_amount)])
    summary.append(['Amount Paid', money_pdf(amount_paid)])
    balance = max(Decimal('0'), final_amount - amount_paid)
    if balance > 0:
        summary.append(['Balance Due', money_pdf(balance)])

    summary_table = Table(summary, colWidths=[4.6*inch, 2.2*inch])
    summary_style = [
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
        ('BACKGROUND', (0, final_row), (-1, final_row), GOLD),
        ('TEXTCOLOR', (0, final_row), (-1, final_row), colors.white),
        ('FONTNAME', (0, final_row), (-1, final_row), 'Helvetica-Bold'),
        ('FONTSIZE', (0, final_row), (-1, final_row), 13),
    ]
    if balance > 0:
        summary_style.append(('TEXTCOLOR', (1, -1), (1, -1), colors.HexColor('#dc2626')))
    summary_table.setStyle(TableStyle(summary_style))
    elements.append(summary_table)
    elements.append(Spacer(1, 0.08*inch))
    elements.append(Paragraph(f'(Rupees {amount_in_words(final_amount)} Only)', small_style))

    if bill.notes:
        elements.append(Spacer(1, 0.15*inch))
        elements.append(Paragraph(f'<b>Notes:</b> {_pdf_text(bill.notes)}', cell_style))

    # Terms and footer
    elements.append(Spacer(1, 0.3*inch))
    elements.append(Paragraph('<b>Terms &amp; Conditions:</b>', small_style))
    for number, term in enumerate(BILL_TERMS, start=1):
        elements.append(Paragraph(f'{number}. {term}', small_style))
    elements.append(Spacer(1, 0.2*inch))
    generated = f"Generated on {datetime_in(datetime.now(timezone.utc))}"
    if bill.admin is not None:
        generated += f" by {bill.admin.name}"
    elements.append(Paragraph(_pdf_text(generated), header_style))

    doc.build(elements)
    buffer.seek(0)
    return buffer


# ---------------------------------------------------------------------------
# Bills export
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReportPeriod:
    """Half-open [start, end) window on Bill.created_at; None means unbounded."""
    start: Optional[datetime]
    end: Optional[datetime]
    label: str
    slug: str


def _utc_midnight(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def _parse_day(value, field: str) -> date:
    try:
        return datetime.strptime(str(value).strip(), '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f'{field} must be a date in YYYY-MM-DD format')


def resolve_report_period(period: Optional[str] = None, date_from=None, date_to=None,
                          now: Optional[datetime] = None) -> ReportPeriod:
    """
    Turn export query parameters into a date window.

    'monthly' and 'quarterly' cover the current calendar month or quarter
    (UTC, like bill numbers). Otherwise from/to are inclusive dates and
    either may be omitted; with neither, every bill is exported.
    """
    now = now or datetime.now(timezone.utc)
    period = (period or '').strip().lower()

    if period == 'monthly':
        start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
        if now.month == 12:
            end = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
        else:
            end = datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)
        return ReportPeriod(start, end, f'Monthly report - {start:%B %Y}', f'{start:%B-%Y}')

    if period == 'quarterly':
        quarter = (now.month - 1) // 3 + 1
        start = datetime(now.year, quarter * 3 - 2, 1, tzinfo=timezone.utc)
        if quarter == 4:
            end = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
        else:
            end = datetime(now.year, quarter * 3 + 1, 1, tzinfo=timezone.utc)
        return ReportPeriod(start, end, f'Quarterly report - Q{quarter} {now.year}', f'Q{quarter}-{now.year}')

    if period not in ('', 'custom'):
        raise ValidationError("period must be 'monthly', 'quarterly' or 'custom'")

    first_day = _parse_day(date_from, 'from') if date_from else None
    last_day = _parse_day(date_to, 'to') if date_to else None
    if first_day is None and last_day is None:
        return ReportPeriod(None, None, 'All bills', 'All')
    if first_day and last_day and first_day > last_day:
        raise ValidationError('from must not be after to')

    return ReportPeriod(
        _utc_midnight(first_day) if first_day else None,
        _utc_midnight(last_day + timedelta(days=1)) if last_day else None,
        f"{first_day or 'Start'} to {last_day or 'Present'}",
        f"{first_day or 'start'}-to-{last_day or 'present'}",
    )


def _products_label(bill: Bill) -> str:
    names = []
    for snapshot, quantity in _bill_lines(bill):
        name = snapshot.get('name') or 'Product'
        names.append(f'{name} (x{quantity})' if quantity > 1 else name)
    return ', '.join(names)


def export_bills_csv(session, period: Optional[str] = None, date_from=None, date_to=None,
                     now: Optional[datetime] = None) -> Tuple[str, ReportPeriod]:
    """
    Bills in a period as CSV, newest first, with a totals row at the end.

    Returns:
        (csv text, the resolved ReportPeriod)

    Raises:
        ValidationError: unknown period or malformed dates
    """
    window = resolve_report_period(period, date_from, date_to, now)
    query = session.query(Bill)
    if window.start is not None:
        query = query.filter(Bill.created_at >= window.start)
    if window.end is not None:
        query = query.filter(Bill.created_at < window.end)
    bills = query.order_by(Bill.created_at.desc(), Bill.id.desc()).all()

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow([
        'bill_number',
        'date',
        'customer_name',
        'customer_phone',
        'products',
        'final_amount',
        'amount_paid',
        'unpaid',
        'payment_mode',
    ])

    total_amount = total_paid = total_unpaid = Decimal('0')
    for bill in bills:
        final_amount = _dec(bill.final_amount)
        amount_paid = _dec(bill.amount_paid)
        unpaid = max(Decimal('0'), final_amount - amount_paid)
        total_amount += final_amount
        total_paid += amount_paid
        total_unpaid += unpaid

        customer = bill.customer or {}
        writer.writerow([
            bill.bill_number,
            bill.created_at.strftime('%Y-%m-%d') if bill.created_at else '',
            customer.get('name', ''),
            customer.get('phone', ''),
            _products_label(bill),
            f"{final_amount:.2f}",
            f"{amount_paid:.2f}",
            f"{unpaid:.2f}",
            PAYMENT_MODE_LABELS.get(bill.payment_mode, bill.payment_mode or ''),
        ])

    writer.writerow([
        '', '', '', '',
        f'Total ({len(bills)} bills)',
        f"{total_amount:.2f}",
        f"{total_paid:.2f}",
        f"{total_unpaid:.2f}",
        '',
    ])
    return buffer.getvalue(), window
