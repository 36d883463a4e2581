import smtplib
import ssl
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.mime.image import MIMEImage
from io import BytesIO
from pathlib import Path
from typing import Dict, List, Optional
from html import escape

import qrcode

from app.core.config import settings

logger = logging.getLogger(__name__)

LOGO_FILES = {
    "relevante_logo": "relevante_logo_white.PNG",
    "vida_logo": "vida_logo_white.PNG",
}


def build_qr_png(data: str) -> bytes:
    """PNG with the participant identifier, as printed on the boarding ticket."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=6,
        border=1,
    )
    qr.add_data(str(data))
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


class EmailService:
    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_email: Optional[str] = None,
        assets_dir: Optional[str] = None,
        enabled: Optional[bool] = None,
    ):
        self.smtp_host = host if host is not None else settings.SMTP_HOST
        self.smtp_port = port if port is not None else settings.SMTP_PORT
        self.username = username if username is not None else settings.SMTP_USER
        self.password = password if password is not None else settings.SMTP_PASS
        self.from_email = from_email or settings.SMTP_FROM or self.username
        self.assets_dir = Path(assets_dir or settings.EMAIL_ASSETS_DIR)
        self.enabled = enabled if enabled is not None else settings.SEND_EMAILS

    @property
    def configured(self) -> bool:
        return bool(self.smtp_host and self.username and self.password)

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.smtp_port == 465:
            return smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context)
        server = smtplib.SMTP(self.smtp_host, self.smtp_port)
        server.starttls(context=context)
        return server

    def send_email(
        self,
        to_emails: List[str],
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        inline_images: Optional[Dict[str, bytes]] = None,
    ) -> bool:
        """Send an HTML email whose images are referenced as cid:<name>"""

        if not self.enabled:
            logger.info(f"Email sending disabled. Would send: {subject} to {to_emails}")
            return True

        try:
            message = MIMEMultipart("related")
            message["Subject"] = subject
            message["From"] = self.from_email
            message["To"] = ", ".join(to_emails)

            body = MIMEMultipart("alternative")
            if text_content:
                body.attach(MIMEText(text_content, "plain", "utf-8"))
            body.attach(MIMEText(html_content, "html", "utf-8"))
            message.attach(body)

            for cid, content in (inline_images or {}).items():
                image = MIMEImage(content, _subtype="png")
                image.add_header("Content-ID", f"<{cid}>")
                image.add_header("Content-Disposition", "inline", filename=f"{cid}.png")
                message.attach(image)

            with self._connect() as server:
                server.login(self.username, self.password)
                server.sendmail(self.from_email, to_emails, message.as_string())

            logger.info(f"Email sent successfully to {to_emails}")
            return True

        except Exception as e:
            logger.error(f"Failed to send email to {to_emails}: {str(e)}")
            return False

    def _logo_images(self) -> Dict[str, bytes]:
        images = {}
        for cid, filename in LOGO_FILES.items():
            path = self.assets_dir / filename
            if path.exists():
                images[cid] = path.read_bytes()
            else:
                logger.warning(f"Email logo not found: {path}")
        return images

    def send_participant_email(
        self,
        to_email: str,
        full_name: str,
        user_id: str,
        email_type: str = "ticket",
        subject: str = "Hello",
        text: str = "Hello",
        contract_url: Optional[str] = None,
    ) -> bool:
        """Ticket email with the check-in QR, or the consent-signing invitation."""
        if email_type == "contract":
            url = contract_url or settings.signing_url(user_id)
            html_content = self._contract_template(full_name, url)
            return self.send_email([to_email], subject, html_content, text)

        images = {"qr-code": build_qr_png(user_id)}
        images.update(self._logo_images())
        html_content = self._ticket_template(full_name)
        return self.send_email([to_email], subject, html_content, text, inline_images=images)

    def _ticket_template(self, full_name: str) -> str:
        name = escape(full_name.upper())
        return f"""
        <!DOCTYPE html>
        <html lang="es">
        <head>
            <meta charset="UTF-8">
            <meta name="viewport" content="width=device-width, initial-scale=1.0">
            <title>Ticket de Embarque - Relevante Camp</title>
            <style>
                body {{ font-family: 'Nunito Sans', Arial, sans-serif; background: #a8c8d8; padding: 20px; line-height: 1.5; }}
                .ticket-container {{ max-width: 650px; margin: 0 auto; background: linear-gradient(135deg, #b8d5e5 0%, #9bc3db 100%); border-radius: 32px; padding: 50px 35px; }}
                .header {{ text-align: center; margin-bottom: 45px; }}
                .ticket-title {{ font-size: 28px; font-weight: 300; letter-spacing: 12px; color: white; margin-bottom: 50px; }}
                .route-code {{ font-size: 68px; font-weight: 900; color: white; letter-spacing: 6px; }}
                .greeting {{ color: white; font-size: 22px; font-weight: 600; margin-bottom: 12px; }}
                .passenger-name {{ color: #1e3a47; font-size: 28px; font-weight: 900; letter-spacing: 3px; background: rgba(255, 255, 255, 0.95); padding: 14px 28px; border-radius: 16px; display: inline-block; }}
                .ticket-details {{ background: white; border-radius: 24px; padding: 35px; margin-bottom: 30px; }}
                .qr-section {{ text-align: center; margin-bottom: 35px; padding-bottom: 35px; border-bottom: 2px solid #f0f0f0; }}
                .qr-code {{ width: 220px; height: 220px; border-radius: 16px; border: 3px solid #e8e8e8; padding: 8px; }}
                .detail-label {{ color: #9ca3af; font-size: 13px; font-weight: 700; text-transform: uppercase; letter-spacing: 1.5px; }}
                .detail-value {{ color: #2d4a57; font-size: 21px; font-weight: 800; }}
                .detail-subvalue {{ color: #6b7280; font-size: 15px; font-weight: 700; }}
                .instructions {{ background: rgba(255, 255, 255, 0.97); border-radius: 24px; padding: 35px; margin-bottom: 45px; }}
                .instructions-title {{ color: #2d4a57; font-size: 24px; font-weight: 800; text-align: center; }}
                .instruction-text {{ color: #4a5568; font-size: 16px; font-weight: 700; }}
                .highlight {{ color: #2d4a57; font-weight: 900; }}
                .footer {{ text-align: center; margin-top: 30px; }}
                .logo {{ height: 65px; margin: 0 17px; }}
            </style>
        </head>
        <body>
            <div class="ticket-container">
                <div class="header">
                    <div class="ticket-title">TICKET DE EMBARQUE</div>
                    <div><span class="route-code">CTG</span> &#128676; <span class="route-code">BCH</span></div>
                    <div class="greeting">Hola campista</div>
                    <div class="passenger-name">{name}</div>
                </div>

                <div class="ticket-details">
                    <div class="qr-section">
                        <img src="cid:qr-code" alt="QR Code" class="qr-code"/>
                    </div>
                    <div class="detail-label">Fecha</div>
                    <div class="detail-value">VIERNES, 14 NOVIEMBRE 2025</div>
                    <div class="detail-label">Embarque</div>
                    <div class="detail-value">07:00 AM</div>
                    <div class="detail-subvalue">MUELLE TURÍSTICO DE MANGA</div>
                    <div class="detail-label">Incluye</div>
                    <div class="detail-subvalue">Un bolso o mochila pequeña de hasta 40x35x25 cm y 12 kg</div>
                </div>

                <div class="instructions">
                    <div class="instructions-title">¡Ya casi comienza tu aventura en Relevante Camp!</div>
                    <p class="instruction-text">1. Ten a la mano tu código QR y tu documento de identidad.</p>
                    <p class="instruction-text">2. Muéstralos al equipo logístico para su validación.</p>
                    <p class="instruction-text">3. Una vez confirmados, podrás ingresar y abordar rumbo a <span class="highlight">RELEVANTE CAMP</span>.</p>
                </div>

                <div class="footer">
                    <img src="cid:relevante_logo" alt="Relevante Camp" class="logo"/>
                    <img src="cid:vida_logo" alt="Vida Ministerio Juvenil" class="logo"/>
                </div>
            </div>
        </body>
        </html>
        """

    def _contract_template(self, full_name: str, contract_url: str) -> str:
        name = escape(full_name)
        url = escape(contract_url, quote=True)
        return f"""
        <!DOCTYPE html>
        <html lang="es">
        <head>
            <meta charset="UTF-8">
            <title>Firma de Consentimiento - Relevante Camp</title>
            <style>
                body {{ font-family: Arial, sans-serif; margin: 0; padding: 20px; background-color: #a8c8d8; }}
                .container {{ max-width: 600px; margin: 0 auto; background-color: white; padding: 30px; border-radius: 24px; }}
                .title {{ color: #2d4a57; font-size: 22px; margin: 20px 0; }}
                .message {{ color: #4b5563; line-height: 1.6; margin: 20px 0; }}
                .button {{ display: inline-block; background-color: #9bc3db; color: white; padding: 12px 24px; text-decoration: none; border-radius: 16px; font-weight: bold; }}
                .footer {{ text-align: center; margin-top: 30px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }}
            </style>
        </head>
        <body>
            <div class="container">
                <h2 class="title">Hola {name}!</h2>
                <div class="message">
                    Para completar tu inscripción en Relevante Camp necesitamos tu firma
                    en el consentimiento de participación.
                </div>
                <p style="text-align: center;">
                    <a href="{url}" class="button">Firmar consentimiento</a>
                </p>
                <div class="message">Si el botón no funciona, copia este enlace en tu navegador:<br>{url}</div>
                <div class="footer">
                    <p>Relevante Camp - Vida Ministerio Juvenil</p>
                </div>
            </div>
        </body>
        </html>
        """


email_service = EmailService()
