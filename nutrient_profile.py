import pandas as pd
import altair as alt

from models import MACROS, MICROS, NUTRIENTS


class NutrientProfile:
    """Hilfsfunktionen für Tabellen und Diagramme eines Mischergebnisses.

    Gerundet wird nur hier (Makros ohne, Mikros mit 2 Nachkommastellen),
    die Berechnung selbst bleibt ungerundet.
    """

    NUTRIENT_LABELS = {
        'N': 'N', 'P2O5': 'P₂O₅', 'K2O': 'K₂O', 'Ca': 'Ca', 'Mg': 'Mg (elementar)', 'S': 'S',
        'Fe': 'Fe', 'Mn': 'Mn', 'Zn': 'Zn', 'Cu': 'Cu', 'B': 'B', 'Mo': 'Mo',
    }

    @staticmethod
    def round_ppm(nutrient, value):
        return round(value, 0 if nutrient in MACROS else 2)

    @staticmethod
    def ppm_df(result):
        """Ein Eintrag je Nährstoff: Label, Gruppe, gerundeter ppm-Wert."""
        rows = []
        for k in NUTRIENTS:
            rows.append({
                "Nährstoff": NutrientProfile.NUTRIENT_LABELS[k],
                "Gruppe": "Makro" if k in MACROS else "Mikro",
                "ppm": NutrientProfile.round_ppm(k, result.ppm.get(k, 0.0)),
            })
        return pd.DataFrame(rows)

    @staticmethod
    def lines_df(result, currency="RM"):
        """Zutatenliste mit verbrauchter Menge und Kosten je Zeile."""
        rows = []
        for i, line in enumerate(result.lines, start=1):
            row = {
                "#": i,
                "Dünger": line.name,
                "Eingabe": line.amount,
                "verbraucht (g)": round(line.grams_consumed, 2),
                "g/L am Tropfer": round(line.grams_per_liter, 4),
            }
            if line.stock_grams_per_liter is not None:
                row["g/L Stammlösung"] = round(line.stock_grams_per_liter, 2)
            row[f"Kosten ({currency})"] = round(line.cost, 2)
            rows.append(row)
        return pd.DataFrame(rows)

    @staticmethod
    def ppm_chart(result, target=None):
        """Balken der Makronährstoffe; optional mit grünen Zielbalken daneben."""
        rows = [
            {"Nährstoff": NutrientProfile.NUTRIENT_LABELS[k], "value": float(result.ppm.get(k, 0.0)),
             "group": "Mischung"}
            for k in MACROS
        ]
        if target:
            rows += [
                {"Nährstoff": NutrientProfile.NUTRIENT_LABELS[k], "value": float(target[k]), "group": "Ziel"}
                for k in MACROS if k in target
            ]
        df = pd.DataFrame(rows)

        return alt.Chart(df).mark_bar().encode(
            x=alt.X('Nährstoff:N', title='Nährstoff', sort=None),
            y=alt.Y('value:Q', title='ppm (mg/L)'),
            color=alt.Color('group:N', scale=alt.Scale(domain=['Ziel', 'Mischung'], range=['#2ca02c', '#b0b0b0']),
                            legend=alt.Legend(title='')),
            xOffset='group:N',
            tooltip=['Nährstoff', 'group', alt.Tooltip('value:Q', format='.2f')]
        ).properties(height=320)

    @staticmethod
    def cost_share_df(result):
        """Kosten je Dünger mit Prozentanteil; leer wenn nichts kostet."""
        rows = [{"Komponente": line.name, "value": float(line.cost)} for line in result.lines if line.cost > 1e-9]
        df = pd.DataFrame(rows)
        if df.empty:
            return df
        df = df.groupby("Komponente", as_index=False, sort=False)["value"].sum()
        df['pct'] = df['value'] / df['value'].sum() * 100
        return df

    @staticmethod
    def cost_pie_chart(pie_df, title="Kostenanteile"):
        if pie_df.empty:
            return None
        return alt.Chart(pie_df).mark_arc(innerRadius=40).encode(
            theta=alt.Theta('value:Q'),
            color=alt.Color('Komponente:N', legend=alt.Legend(title='Komponente')),
            tooltip=[alt.Tooltip('Komponente:N'), alt.Tooltip('value:Q', format='.2f'),
                     alt.Tooltip('pct:Q', format='.1f')]
        ).properties(height=300, title=title)
