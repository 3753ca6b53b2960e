"""Write the reminder sheet: one table row per contact with copy and send buttons."""

from __future__ import annotations

import html
from datetime import date
from pathlib import Path

from reminder_ops.domain.models import ReminderEntry

STYLE = """
body { font-family: Arial, sans-serif; padding: 20px; }
table { border-collapse: collapse; width: 100%; }
th, td { border: 1px solid #ccc; padding: 8px; text-align: left; vertical-align: top; }
th { background-color: #f2f2f2; }
tr:hover { background-color: #f9f9f9; }
button { padding: 5px 8px; margin-left: 5px; cursor: pointer; border-radius: 4px; border: 1px solid #aaa; }
a button { background-color: #25D366; color: white; font-weight: bold; border: none; }
#copy-toast { position: fixed; bottom: 20px; right: 20px; background-color: #4CAF50; color: white;
  padding: 12px 18px; border-radius: 6px; display: none; }
"""

SCRIPT = """
function copyToClipboard(id) {
  navigator.clipboard.writeText(document.getElementById(id).innerText).then(() => {
    const toast = document.getElementById('copy-toast');
    toast.style.display = 'block';
    setTimeout(() => { toast.style.display = 'none'; }, 2000);
  });
}
"""


def _entry_row(index: int, entry: ReminderEntry) -> list[str]:
    phone_id = f"phone{index}"
    message_id = f"msg{index}"
    message_html = html.escape(entry.message).replace("\n", "<br>")
    send_button = ""
    if entry.deep_link:
        send_button = (
            f'<a href="{html.escape(entry.deep_link, quote=True)}" target="_blank" rel="noopener">'
            "<button>Enviar</button></a>"
        )
    phone_cell = html.escape(entry.phone) if entry.phone else "<em>sem número</em>"
    return [
        "<tr>",
        f"<td>{html.escape(entry.display_name)}</td>",
        f'<td><span id="{phone_id}">{phone_cell}</span>'
        f"<button onclick=\"copyToClipboard('{phone_id}')\">Copiar</button></td>",
        f'<td><span id="{message_id}">{message_html}</span>'
        f"<button onclick=\"copyToClipboard('{message_id}')\">Copiar</button>{send_button}</td>",
        "</tr>",
    ]


def render_reminder_sheet(entries: list[ReminderEntry], *, target_date: date) -> str:
    lines = [
        "<!DOCTYPE html>",
        '<html lang="pt">',
        "<head>",
        '<meta charset="UTF-8">',
        f"<title>Mensagens de Agendamento {target_date.isoformat()}</title>",
        f"<style>{STYLE}</style>",
        "</head>",
        "<body>",
        f"<h2>Mensagens de Lembrete de Agendamento ({target_date.isoformat()})</h2>",
        "<table>",
        "<tr><th>Nome</th><th>Número</th><th>Mensagem</th></tr>",
    ]
    for index, entry in enumerate(entries):
        lines.extend(_entry_row(index, entry))
    if not entries:
        lines.append('<tr><td colspan="3">Sem marcações.</td></tr>')
    lines.extend(
        [
            "</table>",
            '<div id="copy-toast">Copiado!</div>',
            f"<script>{SCRIPT}</script>",
            "</body>",
            "</html>",
        ]
    )
    return "\n".join(lines) + "\n"


def write_reminder_sheet(entries: list[ReminderEntry], *, path: Path | str, target_date: date) -> Path:
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(render_reminder_sheet(entries, target_date=target_date), encoding="utf-8")
    return out_path
