"""Mercado Pago API Client for plan checkouts."""
import requests
from typing import Dict, Any, Optional
from flask import current_app


class MercadoPagoClient:
    """Cliente para interactuar con la API de Mercado Pago."""

    BASE_URL = "https://api.mercadopago.com"

    def __init__(self, access_token: Optional[str] = None, timeout: int = 10):
        """
        Initialize Mercado Pago client.

        Args:
            access_token: MP access token. If None, reads MP_ACCESS_TOKEN from app config
            timeout: Request timeout in seconds
        """
        self.access_token = access_token or current_app.config.get('MP_ACCESS_TOKEN')
        if not self.access_token:
            raise ValueError("MP_ACCESS_TOKEN is required")

        self.timeout = timeout
        self.headers = {
            'Authorization': f'Bearer {self.access_token}',
            'Content-Type': 'application/json'
        }

    def create_preference(
        self,
        title: str,
        unit_price: float,
        external_reference: str,
        notification_url: str,
        back_url_base: str,
        payer_email: Optional[str] = None,
        currency_id: str = 'ARS',
        metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Crear preferencia de pago (Checkout Pro) en Mercado Pago.

        Args:
            title: Título del ítem (ej: "Plan Pro")
            unit_price: Monto a cobrar
            external_reference: Referencia externa (empresa:plan:suscripcion)
            notification_url: URL del webhook de pagos
            back_url_base: URL a la que vuelve el usuario; se agrega upgrade_status
            payer_email: Email del pagador
            currency_id: Moneda (default: ARS)
            metadata: Datos que MP devuelve en las notificaciones

        Returns:
            Dict con respuesta de MP incluyendo init_point

        Raises:
            requests.HTTPError: Si la API de MP devuelve error
        """
        url = f"{self.BASE_URL}/checkout/preferences"

        payload = {
            "items": [
                {
                    "title": title,
                    "quantity": 1,
                    "unit_price": unit_price,
                    "currency_id": currency_id
                }
            ],
            "external_reference": external_reference,
            "metadata": metadata or {},
            "notification_url": notification_url,
            "back_urls": {
                "success": f"{back_url_base}?upgrade_status=success",
                "failure": f"{back_url_base}?upgrade_status=failure",
                "pending": f"{back_url_base}?upgrade_status=pending"
            },
            "auto_return": "approved"
        }

        if payer_email:
            payload["payer"] = {"email": payer_email}

        current_app.logger.info(f"[MP] Creating preference for {external_reference}")

        try:
            response = requests.post(url, json=payload, headers=self.headers, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()

            current_app.logger.info(
                f"[MP] Preference created: {data.get('id')} - init_point: {data.get('init_point')}"
            )

            return data

        except requests.HTTPError as e:
            current_app.logger.error(f"[MP] Error creating preference: {e.response.text}")
            raise
        except requests.RequestException as e:
            current_app.logger.error(f"[MP] Unexpected error: {str(e)}")
            raise
