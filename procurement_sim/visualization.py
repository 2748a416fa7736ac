"""
Charts for negotiation analysis: price progression per counterparty and
the decision's score breakdown.
"""

from pathlib import Path
from typing import Optional, Sequence, Union

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import seaborn as sns  # noqa: E402

from .models import Decision, NegotiationResult, OfferSource  # noqa: E402
from .scoring import scores_frame  # noqa: E402

sns.set_palette("husl")

PathLike = Union[str, Path]


# ===== OUTCOME VISUALIZATIONS =====

def plot_price_progression(results: Sequence[NegotiationResult],
                           save_path: Optional[PathLike] = None,
                           show: bool = False) -> Optional[plt.Figure]:
    """
    Plot brand and supplier offer prices round by round for each negotiation.
    """
    if not any(result.history for result in results):
        return None

    fig, ax = plt.subplots(figsize=(12, 6))
    palette = sns.color_palette("husl", len(results))

    for color, result in zip(palette, results):
        for source, style in ((OfferSource.SUPPLIER, '-'), (OfferSource.BRAND, '--')):
            entries = [e for e in result.history if e.source == source]
            if not entries:
                continue
            ax.plot([e.round_num + 1 for e in entries], [e.offer.unit_price for e in entries],
                    linestyle=style, marker='o', color=color, linewidth=2, markersize=6,
                    label=f"{result.counterparty_name} ({source.value})")
        if result.final_offer is not None:
            ax.axhline(result.final_offer.unit_price, color=color, alpha=0.3, linestyle=':')

    ax.set_xlabel('Round', fontsize=12)
    ax.set_ylabel('Average Unit Price ($)', fontsize=12)
    ax.set_title('Price Progression by Counterparty', fontsize=14, fontweight='bold')
    ax.legend(loc='best', fontsize=9)
    ax.grid(True, alpha=0.3)
    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
    if show:
        plt.show()
    return fig


def plot_score_breakdown(decision: Decision,
                         save_path: Optional[PathLike] = None,
                         show: bool = False) -> Optional[plt.Figure]:
    """
    Heatmap of criterion scores per counterparty, ordered by rank.
    """
    frame = scores_frame(decision)
    if frame.empty:
        return None

    criteria = ['quality_score', 'cost_score', 'lead_time_score', 'payment_terms_score', 'total_score']
    data = frame.set_index('name')[criteria]
    data.columns = ['Quality', 'Cost', 'Lead Time', 'Payment', 'Total']

    fig, ax = plt.subplots(figsize=(10, 1.2 + 0.8 * len(data)))
    sns.heatmap(data, annot=True, fmt='.0f', cmap='RdYlGn', vmin=0, vmax=100,
                cbar_kws={'label': 'Score'}, ax=ax)
    ax.set_title('Supplier Scores', fontsize=14, fontweight='bold')
    ax.set_ylabel('')
    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
    if show:
        plt.show()
    return fig
