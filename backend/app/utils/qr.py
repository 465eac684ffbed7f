import base64
import json
from io import BytesIO

import qrcode


def encode(payload: str) -> str:
    """文字列をQRコード画像（PNGのdata URI）に変換する"""
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(payload)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    img_buffer = BytesIO()
    img.save(img_buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(img_buffer.getvalue()).decode("ascii")


def parse_scanned(text: str) -> dict:
    """スキャン結果を解析する。IDのみの文字列と {"id": ...} のJSONの両方に対応

    戻り値は必ず "id" を含む。JSONの場合はその他の項目もそのまま含む。
    """
    text = text.strip()
    if text.startswith("{"):
        try:
            data = json.loads(text)
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("id"):
            return {**data, "id": str(data["id"])}
    return {"id": text}


def decode_scanned(text: str) -> str:
    return parse_scanned(text)["id"]
