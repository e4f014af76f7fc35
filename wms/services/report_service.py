"""
Composition reports.

Reports are built from the composition's stored snapshot, never from a fresh
calculation, so a report always describes the plan as it was saved.
"""
import logging
from datetime import datetime
from decimal import Decimal
from io import BytesIO
from typing import Optional, Dict, Any, List
from xml.sax.saxutils import escape

from flask import current_app, has_app_context
from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER
from sqlalchemy.orm import Session

from wms.models import CompositionReport
from wms.exceptions import NotFoundError
from wms.services.composition_service import get_composition
from wms.utils.quantities import to_decimal, to_snapshot, fmt_decimal

logger = logging.getLogger(__name__)

DEFAULT_REPORT_TITLE = 'Reporte de Composición'

EFFICIENCY_BENCHMARK = Decimal('80')
WEIGHT_BENCHMARK = Decimal('70')


def generate_report(composition_id: int, session: Session, user_id: Optional[int],
                    include_metrics: bool = True, include_recommendations: bool = True) -> CompositionReport:
    """
    Build and persist a detailed report for a saved composition.

    Returns:
        CompositionReport: persisted report; report_data holds the snapshot,
        metrics, prioritized recommendations and an executive summary
    """
    composition = get_composition(composition_id, session)
    snapshot = composition.result or {}

    metrics = _build_metrics(snapshot)
    recommendations = _build_recommendations(snapshot) if include_recommendations else []

    report_data = {
        'composition_id': composition.id,
        'composition_name': composition.name,
        'status': composition.status.value,
        'generated_at': datetime.now(),
        'composition': snapshot,
        'metrics': metrics if include_metrics else None,
        'recommendations': recommendations,
        'executive_summary': _build_summary(snapshot, metrics, recommendations),
    }

    title_prefix = current_app.config.get('REPORT_TITLE', DEFAULT_REPORT_TITLE) if has_app_context() else DEFAULT_REPORT_TITLE

    try:
        report = CompositionReport(
            composition_id=composition.id,
            report_type='detailed',
            title=f'{title_prefix} - {composition.name}',
            report_data=to_snapshot(report_data),
            generated_by=user_id,
            is_active=True
        )
        session.add(report)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Report {report.id} generated for composition {composition.id}")
    return report


def get_report(report_id: int, session: Session) -> CompositionReport:
    """Get an active report or raise NotFoundError."""
    report = session.get(CompositionReport, report_id)
    if not report or not report.is_active:
        raise NotFoundError(f'Reporte {report_id} no encontrado', payload={'report_id': report_id})
    return report


def report_to_dict(report: CompositionReport) -> Dict[str, Any]:
    return {
        'id': report.id,
        'composition_id': report.composition_id,
        'report_type': report.report_type,
        'title': report.title,
        'report_data': report.report_data,
        'generated_by': report.generated_by,
        'generated_at': report.generated_at.isoformat() if report.generated_at else None,
    }


def render_report_pdf(report: CompositionReport, business_info: Optional[Dict[str, Any]] = None) -> BytesIO:
    """
    Render a composition report as PDF.

    Returns:
        BytesIO: PDF content, positioned at the start
    """
    business_info = business_info or {}
    if not business_info.get('name') and has_app_context():
        business_info['name'] = current_app.config.get('BUSINESS_NAME')

    data = report.report_data or {}
    snapshot = data.get('composition') or {}
    metrics = data.get('metrics') or {}
    summary = data.get('executive_summary') or {}

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75*inch,
        leftMargin=0.75*inch,
        topMargin=0.75*inch,
        bottomMargin=0.75*inch
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'ReportTitle',
        parent=styles['Heading1'],
        fontSize=20,
        textColor=colors.HexColor('#2C3E50'),
        spaceAfter=12,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )
    header_style = ParagraphStyle(
        'ReportHeader',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#7F8C8D'),
        alignment=TA_CENTER,
        spaceAfter=6
    )
    section_style = ParagraphStyle(
        'ReportSection',
        parent=styles['Heading3'],
        textColor=colors.HexColor('#34495E'),
        spaceBefore=12,
        spaceAfter=6
    )

    # 1. Title
    elements.append(Paragraph(escape(report.title or ''), title_style))
    if business_info.get('name'):
        elements.append(Paragraph(f"<b>{escape(business_info['name'])}</b>", header_style))

    generated_at = report.generated_at or datetime.now()
    elements.append(Paragraph(f"Generado: {generated_at.strftime('%d/%m/%Y %H:%M')}", header_style))
    elements.append(Spacer(1, 0.3*inch))

    # 2. Composition summary
    pallet = snapshot.get('pallet') or {}
    info_data = [
        ['Composición:', data.get('composition_name', '')],
        ['Estado:', data.get('status', '')],
        ['Pallet:', f"{pallet.get('code', '-')} ({pallet.get('type', '-')})"],
        ['Válida:', 'Sí' if snapshot.get('is_valid') else 'No'],
        ['Calificación:', _rating_label(summary.get('overall_rating'))],
    ]
    info_table = Table(info_data, colWidths=[2*inch, 4*inch])
    info_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))
    elements.append(info_table)

    # 3. Metrics
    if metrics:
        elements.append(Paragraph('Métricas', section_style))
        metrics_data = [['Indicador', 'Valor']]
        for label, key in (
            ('Utilización de espacio', 'space_utilization'),
            ('Utilización de peso', 'weight_utilization'),
            ('Utilización de altura', 'height_utilization'),
            ('Eficiencia general', 'overall_efficiency'),
        ):
            metrics_data.append([label, _percent(metrics.get(key))])
        elements.append(_grid_table(metrics_data, [4*inch, 2*inch]))

    # 4. Products
    products = snapshot.get('products') or []
    if products:
        elements.append(Paragraph('Productos', section_style))
        table_data = [['Producto', 'Cantidad', 'Unidades base', 'Peso (kg)', 'Capa']]
        for line in products:
            table_data.append([
                line.get('product_name') or str(line.get('product_id')),
                str(line.get('quantity', '')),
                str(line.get('base_units', '')),
                str(line.get('total_weight', '')),
                str(line.get('layer', '')),
            ])
        elements.append(_grid_table(table_data, [2.6*inch, 0.9*inch, 1.1*inch, 1*inch, 0.6*inch]))

    # 5. Recommendations
    recommendations = data.get('recommendations') or []
    if recommendations:
        elements.append(Paragraph('Recomendaciones', section_style))
        for rec in recommendations:
            elements.append(Paragraph(f"[{rec.get('priority', '').upper()}] {escape(rec.get('message') or '')}", styles['Normal']))

    doc.build(elements)
    buffer.seek(0)
    return buffer


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _metric(snapshot: dict, key: str, field: str = 'utilization') -> Decimal:
    value = (snapshot.get(key) or {}).get(field)
    return to_decimal(value) if value not in (None, '') else Decimal('0')


def _build_metrics(snapshot: dict) -> Dict[str, Decimal]:
    efficiency = snapshot.get('efficiency')
    return {
        'space_utilization': _metric(snapshot, 'volume'),
        'weight_utilization': _metric(snapshot, 'weight'),
        'height_utilization': _metric(snapshot, 'height'),
        'overall_efficiency': to_decimal(efficiency) if efficiency not in (None, '') else Decimal('0'),
    }


def _build_recommendations(snapshot: dict) -> List[Dict[str, Any]]:
    items = []
    for violation in snapshot.get('violations') or []:
        items.append({
            'type': 'warning',
            'priority': 'critical',
            'message': violation.get('message'),
            'action_required': True,
        })
    for message in snapshot.get('warnings') or []:
        items.append({'type': 'warning', 'priority': 'high', 'message': message, 'action_required': False})
    for message in snapshot.get('recommendations') or []:
        items.append({'type': 'optimization', 'priority': 'medium', 'message': message, 'action_required': False})
    return items


def _benchmark_status(value: Decimal, benchmark: Decimal) -> str:
    if value > benchmark:
        return 'above'
    if value == benchmark:
        return 'at'
    return 'below'


def _overall_rating(is_valid: bool, efficiency: Decimal) -> str:
    if not is_valid:
        return 'poor'
    if efficiency >= Decimal('0.85'):
        return 'excellent'
    if efficiency >= Decimal('0.7'):
        return 'good'
    if efficiency >= Decimal('0.5'):
        return 'fair'
    return 'poor'


def _build_summary(snapshot: dict, metrics: dict, recommendations: List[dict]) -> Dict[str, Any]:
    efficiency_pct = metrics['overall_efficiency'] * 100
    weight_pct = metrics['weight_utilization'] * 100
    return {
        'overall_rating': _overall_rating(bool(snapshot.get('is_valid')), metrics['overall_efficiency']),
        'key_metrics': [
            {'name': 'Eficiencia', 'value': efficiency_pct, 'unit': '%', 'benchmark': EFFICIENCY_BENCHMARK,
             'status': _benchmark_status(efficiency_pct, EFFICIENCY_BENCHMARK)},
            {'name': 'Utilización de Peso', 'value': weight_pct, 'unit': '%', 'benchmark': WEIGHT_BENCHMARK,
             'status': _benchmark_status(weight_pct, WEIGHT_BENCHMARK)},
        ],
        'major_issues': [v.get('message') for v in snapshot.get('violations') or []],
        'top_recommendations': [r['message'] for r in recommendations[:3]],
    }


def _percent(value: Any) -> str:
    if value in (None, ''):
        return '-'
    return f"{fmt_decimal(to_decimal(value) * 100)}%"


def _rating_label(rating: Optional[str]) -> str:
    return {
        'excellent': 'Excelente',
        'good': 'Buena',
        'fair': 'Regular',
        'poor': 'Deficiente',
    }.get(rating, '-')


def _grid_table(rows: List[list], col_widths: List[float]) -> Table:
    table = Table(rows, colWidths=col_widths)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#3498DB')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 8),
        ('ALIGN', (1, 1), (-1, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BDC3C7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#ECF0F1')]),
    ]))
    return table
