# dentalclinic/services/notification_templates.py
"""Patient-facing message templates.

Every template is a plain ``str.format`` string with named fields. ``{clinic}``
is always filled from the settings, the rest must be supplied by the caller.
"""
import string
from datetime import date
from typing import Any, Dict, Set

from ..config import get_settings
from ..exceptions import ValidationError

APPOINTMENT_REMINDER = "appointment_reminder"
CONFIRMATION_REQUEST = "confirmation_request"
PAYMENT_REMINDER = "payment_reminder"
POST_CARE_INSTRUCTIONS = "post_care_instructions"
FAQ_RESPONSE = "faq_response"
NO_SHOW_NOTIFICATION = "no_show_notification"
APPOINTMENT_CONFIRMED = "appointment_confirmed"
PAYMENT_RECEIPT = "payment_receipt"
PATIENT_CONFIRMED = "patient_confirmed"
GENERAL_INFO = "general_info"

TEMPLATES: Dict[str, str] = {
    APPOINTMENT_REMINDER: """Olá {patient_name}!

Lembrete: Você tem uma consulta agendada!

📅 Data: {date}
⏰ Hora: {time}
🏥 Dentista: {dentist_name}

Por favor, confirme sua presença respondendo com SIM ou pelo nosso portal.

Dúvidas? Fale conosco!
{clinic} 🦷""",

    CONFIRMATION_REQUEST: """Olá {patient_name}!

Confirme sua consulta agendada para:
📅 {date} às {time}

Responda SIM para confirmar ou NÃO para cancelar.

Se precisar remarcar, fale conosco pelo WhatsApp.

{clinic} 🦷""",

    PAYMENT_REMINDER: """Olá {patient_name}!

Você tem um pagamento pendente:

💰 Valor: R$ {amount}
📅 Vencimento: {due_date}

Fale conosco para pagar ou parcelar.

{clinic} 🦷""",

    POST_CARE_INSTRUCTIONS: """Olá {patient_name}!

Cuidados pós-procedimento:

{instructions}

Em caso de dúvidas, nos contacte imediatamente.

{clinic} 🦷""",

    FAQ_RESPONSE: """Olá {patient_name}!

Sua pergunta: "{question}"

Resposta:
{answer}

Tem mais dúvidas? Responda aqui ou visite nosso portal.

{clinic} 🦷""",

    NO_SHOW_NOTIFICATION: """Olá {patient_name}!

Notamos que você não compareceu à sua consulta.

Para remarcar, por favor:
1. Visite nosso portal
2. Ou responda este WhatsApp
3. Ou ligue para a clínica

Ficamos na espera de seu agendamento!

{clinic} 🦷""",

    APPOINTMENT_CONFIRMED: """Olá! Sua consulta foi confirmada!

Detalhes da sua consulta:
📅 Data: {date}
🕐 Horário: {time}
🏥 Local: {location}
🦷 Procedimento: {procedure_name}
👨‍⚕️ Dentista: Dr. {dentist_name}

Chegue 10 minutos antes do horário marcado.
Dúvidas? Entre em contato conosco!

{clinic}""",

    PAYMENT_RECEIPT: """Olá {patient_name}!

Seu pagamento de R$ {amount} foi registrado com sucesso!

Obrigado! 🦷
{clinic}""",

    PATIENT_CONFIRMED: "Paciente confirmou a consulta",

    GENERAL_INFO: "{message}",
}


def template_fields(kind: str) -> Set[str]:
    template = _get_template(kind)
    return {field for _, field, _, _ in string.Formatter().parse(template) if field}


def format_date(value: date) -> str:
    """dd/mm/yyyy, the way patients read dates."""
    return value.strftime("%d/%m/%Y")


def format_amount(value: Any) -> str:
    return f"{float(value):.2f}"


def render(kind: str, **args: Any) -> str:
    """Render template ``kind`` with ``args``; missing fields are a validation error."""
    template = _get_template(kind)
    values = {"clinic": get_settings().clinic_name}
    values.update({key: value for key, value in args.items() if value is not None})

    missing = sorted(template_fields(kind) - set(values))
    if missing:
        raise ValidationError(f"Missing template arguments for '{kind}': {', '.join(missing)}")
    return template.format(**values).strip()


def _get_template(kind: str) -> str:
    try:
        return TEMPLATES[kind]
    except KeyError:
        raise ValidationError(f"Unknown notification template: {kind}")
