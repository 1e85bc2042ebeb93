"""HTML email bodies for alert batches and baseline notices."""

from __future__ import annotations

import html
import time
from dataclasses import dataclass
from typing import Callable, Optional

from snapwatch.models.outcome import AlertBatch, BaselineNotice, Outcome

ACCENT = "#ff2d95"

ImageLoader = Callable[[str], Optional[bytes]]


@dataclass
class InlineImage:
    cid: str
    filename: str
    payload: bytes


@dataclass
class RenderedEmail:
    subject: str
    html: str
    text: str
    images: list[InlineImage]


def _section(title: str, body: str) -> str:
    return f'''
        <div style="background:#1a0a10;border-left:4px solid {ACCENT};padding:12px;margin-bottom:12px;">
          <strong style="color:{ACCENT};">{html.escape(title)}</strong>
          {body}
        </div>'''


def _image_cell(label: str, cid: str) -> str:
    return f'''
              <td style="padding:8px;text-align:center;">
                <p style="margin:0 0 4px;color:#888888;font-size:11px;">{html.escape(label)}</p>
                <img src="cid:{cid}" alt="{html.escape(label)}" style="max-width:260px;border:1px solid #333333;display:block;" />
              </td>'''


def _build_alert_card(o: Outcome, images: list[InlineImage], load_image: ImageLoader) -> str:
    """Build the HTML card for one alert-worthy outcome, collecting inline images."""
    sections = []

    if o.mismatch_percent is not None and o.mismatch_percent > o.tolerance_percent:
        cells = []
        if o.evidence:
            for label, ref, kind in (
                ("Current Screenshot", o.evidence.current_image_ref, "current"),
                ("Diff Image", o.evidence.diff_image_ref, "diff"),
            ):
                payload = load_image(ref)
                if not payload:
                    continue
                cid = f"snapwatch-{kind}-{len(images)}"
                images.append(InlineImage(cid=cid, filename=f"{kind}-{len(images)}.png", payload=payload))
                cells.append(_image_cell(label, cid))
        body = (
            f'<p style="margin:8px 0 4px;color:#cccccc;">Mismatch: <strong>{o.mismatch_percent:.2f}%</strong> '
            f'(tolerance: {o.tolerance_percent}%)</p>'
        )
        if cells:
            body += f'<table style="width:100%;border-collapse:collapse;"><tr>{"".join(cells)}</tr></table>'
        sections.append(_section("Visual Regression", body))

    if o.diagnostics:
        items = "".join(f'<li style="margin:4px 0;color:#cccccc;">{html.escape(d)}</li>' for d in o.diagnostics)
        sections.append(_section("Diagnostics", f'<ul style="margin:8px 0 0;padding-left:20px;">{items}</ul>'))

    url = html.escape(o.target_url)
    return f'''
      <div style="border:1px solid #222222;padding:16px;margin-bottom:16px;">
        <h3 style="margin:0 0 8px;color:{ACCENT};"><a href="{url}" style="color:{ACCENT};">{url}</a></h3>
        <p style="margin:0 0 12px;color:#666666;font-size:13px;">
          Viewport: <strong style="color:#cccccc;">{html.escape(o.viewport.name)}</strong> ({o.viewport.width}x{o.viewport.height})
        </p>
        {"".join(sections)}
      </div>'''


def _wrap(title: str, intro: str, content: str, footer: str) -> str:
    return f'''<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family:Consolas,'Courier New',monospace;background:#000000;padding:20px;">
  <div style="max-width:640px;margin:0 auto;background:#111111;padding:24px;">
    <h1 style="margin:0 0 4px;font-size:22px;color:{ACCENT};">{html.escape(title)}</h1>
    <p style="margin:0 0 20px;color:#666666;font-size:13px;">{time.strftime("%a, %d %b %Y %H:%M:%S GMT", time.gmtime())}</p>
    <p style="margin:0 0 20px;color:#cccccc;">{html.escape(intro)}</p>
    {content}
    <hr style="border:none;border-top:1px solid #222222;margin:20px 0;">
    <p style="color:#666666;font-size:12px;text-align:center;margin:0;">{html.escape(footer)}</p>
  </div>
</body>
</html>'''


def _text_line(o: Outcome) -> str:
    parts = [f"- {o.target_url} [{o.viewport.label}]"]
    if o.mismatch_percent is not None:
        parts.append(f"mismatch {o.mismatch_percent:.2f}% (tolerance {o.tolerance_percent}%)")
    parts.extend(o.diagnostics)
    return " | ".join(parts)


def render_alert_email(batch: AlertBatch, load_image: ImageLoader) -> RenderedEmail:
    """Render one consolidated alert email for a recipient."""
    images: list[InlineImage] = []
    cards = "".join(_build_alert_card(o, images, load_image) for o in batch.outcomes)
    count = len(batch.outcomes)
    return RenderedEmail(
        subject=f"snapwatch alert -- {count} issue(s) detected",
        html=_wrap(
            "snapwatch Report",
            "The following issues were detected during the latest scan:",
            cards,
            "Baselines are only updated by bumping baseline_version in the configuration.",
        ),
        text="\n".join(_text_line(o) for o in batch.outcomes),
        images=images,
    )


def render_baseline_email(notice: BaselineNotice, load_image: Optional[ImageLoader] = None) -> RenderedEmail:
    """Render a notice listing the baselines adopted for a recipient.

    When ``load_image`` is given, each adopted baseline is attached inline
    below the table.
    """
    rows = "".join(
        f'''
        <tr>
          <td style="padding:10px 14px;border-bottom:1px solid #222222;color:#cccccc;word-break:break-all;">{html.escape(o.target_url)}</td>
          <td style="padding:10px 14px;border-bottom:1px solid #222222;text-align:center;color:#cccccc;">{html.escape(o.viewport.label)}</td>
          <td style="padding:10px 14px;border-bottom:1px solid #222222;text-align:center;color:#cccccc;">v{o.baseline_version}</td>
        </tr>'''
        for o in notice.outcomes
    )
    content = f'''
    <table style="width:100%;border-collapse:collapse;border:1px solid #222222;">
      <thead><tr style="background:#1a1a1a;">
        <th style="padding:10px 14px;text-align:left;color:{ACCENT};">URL</th>
        <th style="padding:10px 14px;text-align:center;color:{ACCENT};">Viewport</th>
        <th style="padding:10px 14px;text-align:center;color:{ACCENT};">Version</th>
      </tr></thead>
      <tbody>{rows}</tbody>
    </table>'''

    images: list[InlineImage] = []
    cells = []
    for o in notice.outcomes:
        payload = load_image(o.baseline_image_ref) if load_image and o.baseline_image_ref else None
        if not payload:
            continue
        cid = f"snapwatch-baseline-{len(images)}"
        images.append(InlineImage(cid=cid, filename=f"baseline-{len(images)}.png", payload=payload))
        cells.append(f"<tr>{_image_cell(f'{o.target_url} [{o.viewport.label}]', cid)}</tr>")
    if cells:
        content += f'<table style="width:100%;border-collapse:collapse;margin-top:16px;">{"".join(cells)}</table>'

    return RenderedEmail(
        subject=f"snapwatch -- {len(notice.outcomes)} new baseline(s) captured",
        html=_wrap(
            "snapwatch -- New Baseline Set",
            "New baseline images have been captured for the following monitors:",
            content,
            "Future runs will compare screenshots against these baselines.",
        ),
        text="\n".join(f"- {o.target_url} [{o.viewport.label}] v{o.baseline_version}" for o in notice.outcomes),
        images=images,
    )
