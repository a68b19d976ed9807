import logging
import os
import uuid

import streamlit as st

import config
import database
from logic import compute, ec_delta_to_target, fertilizer_map, mix_warnings, suggest_doses
from models import (
    MACROS, MICROS, DoseLine, DosingMode, FertilizerProfile, MixConfiguration, Topology, WeightUnit,
)
from nutrient_profile import NutrientProfile
from recipe import build_recipe, dose_lines_from_recipe, new_batch_id
from units import to_non_negative_number

# --- KONFIGURATION & DB ---
logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
st.set_page_config(page_title="Düngerrechner", layout="wide")


@st.cache_resource
def get_db():
    db = database.open_db()
    # Startdaten (z.B. data/seed.json) ohne Duplikate übernehmen
    if config.SEED_PATH and os.path.exists(config.SEED_PATH):
        database.import_fertilizers(db, config.SEED_PATH)
    return db


db = get_db()

DOSE_MODE_LABELS = {DosingMode.TOTAL_IN_VESSEL: "Gesamtmenge im Tank", DosingMode.PER_LITER: "pro Liter"}
TOPOLOGY_LABELS = {Topology.DIRECT: "Direktmischung", Topology.STOCK_INJECTOR: "Stammlösung (Injektor)"}

if 'rows' not in st.session_state:
    st.session_state['rows'] = []  # [{key, fert_id, amount}]
if 'mix' not in st.session_state:
    st.session_state['mix'] = {}


def new_row(fert_id=None, amount=""):
    # feste Zeilen-ID, damit Widget-Zustände beim Löschen nicht verrutschen
    return {"key": uuid.uuid4().hex, "fert_id": fert_id, "amount": amount}


def load_recipe_into_mix(recipe):
    lines, mix_config = dose_lines_from_recipe(recipe)
    st.session_state['rows'] = [new_row(l.fertilizer_id, str(l.amount)) for l in lines]
    st.session_state['mix'] = mix_config.model_dump()


def mix_inputs():
    """Eingaben für Tank/Injektor; liefert eine MixConfiguration."""
    preset = st.session_state['mix']
    col1, col2, col3 = st.columns(3)
    topology = col1.radio(
        "Mischart", list(Topology), format_func=TOPOLOGY_LABELS.get,
        index=list(Topology).index(Topology(preset.get('topology', Topology.DIRECT))),
    )
    volume_label = "Volumen Stammtank (L)" if topology == Topology.STOCK_INJECTOR else "Volumen (L)"
    volume = col1.text_input(volume_label, value=str(preset.get('vessel_volume_l', config.DEFAULT_VOLUME_L)))
    dosing_mode = col2.radio(
        "Dosierung", list(DosingMode), format_func=DOSE_MODE_LABELS.get,
        index=list(DosingMode).index(DosingMode(preset.get('dosing_mode', DosingMode.TOTAL_IN_VESSEL))),
    )
    weight_unit = col2.radio(
        "Einheit", list(WeightUnit), format_func=lambda u: u.value, horizontal=True,
        index=list(WeightUnit).index(WeightUnit(preset.get('weight_unit', WeightUnit.GRAMS))),
    )
    ratio = config.DEFAULT_INJECTOR_RATIO
    if topology == Topology.STOCK_INJECTOR:
        ratio = col3.text_input("Injektor 1:x", value=str(preset.get('injector_ratio', ratio)))
    ec_scale = col3.text_input("EC-Skalierung", value=str(preset.get('ec_scale', config.DEFAULT_EC_SCALE)))
    ec_target = col3.text_input("EC-Ziel (mS/cm, optional)", value=str(preset.get('ec_target') or ""))
    ec_measured = col3.text_input("EC gemessen (mS/cm, optional)", value=str(preset.get('ec_measured') or ""))
    heuristic = st.checkbox("Prozentangaben < 1 als Anteil lesen (0.14 = 14 %)",
                            value=preset.get('fraction_percent_heuristic', False))

    return MixConfiguration(
        vessel_volume_l=volume,
        dosing_mode=dosing_mode,
        weight_unit=weight_unit,
        topology=topology,
        injector_ratio=ratio,
        ec_scale=ec_scale,
        ec_target=ec_target,
        ec_measured=ec_measured,
        fraction_percent_heuristic=heuristic,
    )


def show_results(result, mix_config, target=None):
    st.subheader("Ergebnis am Tropfer (ppm)")
    ppm = NutrientProfile.ppm_df(result)
    c1, c2 = st.columns(2)
    c1.table(ppm[ppm["Gruppe"] == "Makro"][["Nährstoff", "ppm"]])
    c2.table(ppm[ppm["Gruppe"] == "Mikro"][["Nährstoff", "ppm"]])

    m1, m2, m3 = st.columns(3)
    m1.metric(f"Gesamtkosten ({config.CURRENCY})", f"{result.cost_per_batch:.2f}")
    delta = ec_delta_to_target(mix_config.ec_target, result.ec_estimate_ms_cm)
    m2.metric("EC geschätzt (mS/cm)", f"{result.ec_estimate_ms_cm:.2f}",
              delta=f"{delta:.2f} zum Ziel" if mix_config.ec_target else None)
    if mix_config.ec_measured:
        m3.metric("EC gemessen (mS/cm)", f"{mix_config.ec_measured:.2f}")

    if result.lines:
        st.dataframe(NutrientProfile.lines_df(result, config.CURRENCY), hide_index=True)
        st.altair_chart(NutrientProfile.ppm_chart(result, target), use_container_width=True)
        pie = NutrientProfile.cost_pie_chart(NutrientProfile.cost_share_df(result))
        if pie is not None:
            st.altair_chart(pie, use_container_width=True)

    for w in mix_warnings(result, mix_config):
        st.warning(w)


# --- UI NAVIGATION ---
st.title("🌿 Düngerrechner (Fertigation)")
tab1, tab2, tab3, tab4 = st.tabs(["🧮 Mischung", "🎯 Vorschlag", "🧪 Düngemittel", "📋 Rezepte"])

all_ferts = database.get_all_fertilizers(db)
ferts_by_id = fertilizer_map(all_ferts)

# --- TAB 1: MISCHUNG ---
with tab1:
    st.header("Mischung berechnen")
    mix_config = mix_inputs()

    unit = mix_config.weight_unit.value
    amount_label = f"{unit} gesamt" if mix_config.dosing_mode == DosingMode.TOTAL_IN_VESSEL else f"{unit}/L"
    if mix_config.topology == Topology.STOCK_INJECTOR:
        amount_label += " (Stammtank)"

    st.subheader("Zutaten")
    if not all_ferts:
        st.warning("Bitte lege zuerst Düngemittel im Tab 'Düngemittel' an!")

    options = [None] + [f.id for f in all_ferts]
    rows = st.session_state['rows']
    for i, row in enumerate(rows):
        row_key = row.setdefault('key', uuid.uuid4().hex)
        c1, c2, c3 = st.columns([4, 2, 1])
        current = row.get('fert_id') if row.get('fert_id') in ferts_by_id else None
        row['fert_id'] = c1.selectbox(
            "Dünger", options, index=options.index(current), key=f"row_fert_{row_key}",
            format_func=lambda fid: ferts_by_id[fid].name if fid in ferts_by_id else "Dünger wählen…",
        )
        row['amount'] = c2.text_input(amount_label, value=row.get('amount', ""), key=f"row_amount_{row_key}")
        if c3.button("🗑", key=f"row_del_{row_key}"):
            rows.pop(i)
            st.rerun()
    if st.button("➕ Zeile hinzufügen"):
        rows.append(new_row())
        st.rerun()

    dose_lines = [DoseLine(fertilizer_id=r['fert_id'], amount=r['amount']) for r in rows]
    result = compute(dose_lines, ferts_by_id, mix_config)
    show_results(result, mix_config)

    with st.expander("💾 Als Rezept speichern"):
        with st.form("recipe_form"):
            batch_id = st.text_input("Chargen-ID", value=new_batch_id())
            house_zone = st.text_input("Haus / Zone")
            operator = st.text_input("Bearbeiter")
            notes = st.text_area("Notizen")
            if st.form_submit_button("Speichern"):
                if database.find_recipes_by_batch(db, batch_id.strip()):
                    st.warning(f"Chargen-ID {batch_id} existiert bereits, wird zusätzlich gespeichert.")
                recipe = build_recipe(dose_lines, ferts_by_id, mix_config, result=result, batch_id=batch_id,
                                      notes=notes, house_zone=house_zone, operator=operator)
                database.save_recipe(db, recipe)
                st.success(f"Rezept \"{recipe.batch_id}\" gespeichert.")

# --- TAB 2: VORSCHLAG ---
with tab2:
    st.header("Dosierung für Zielwerte vorschlagen")
    if not all_ferts:
        st.warning("Keine Düngemittel vorhanden.")
    else:
        chosen = st.multiselect("Dünger", [f.id for f in all_ferts], format_func=lambda fid: ferts_by_id[fid].name)
        st.write("Zielwerte am Tropfer (ppm), leere Felder werden ignoriert")
        cols = st.columns(6)
        target = {}
        for i, k in enumerate(MACROS):
            val = cols[i].text_input(f"Ziel {NutrientProfile.NUTRIENT_LABELS[k]}", key=f"target_{k}")
            if val.strip():
                target[k] = val
        if st.button("🚀 Besten Mix berechnen", type="primary") and chosen:
            selected = [ferts_by_id[fid] for fid in chosen]
            st.session_state["suggestion"] = suggest_doses(target, selected, mix_config)

        suggestion = st.session_state.get("suggestion")
        if suggestion:
            suggested = compute(suggestion, ferts_by_id, mix_config)
            show_results(suggested, mix_config, target={k: to_non_negative_number(v) for k, v in target.items()})
            if st.button("In Mischung übernehmen"):
                st.session_state["rows"] = [new_row(l.fertilizer_id, f"{l.amount:.2f}") for l in suggestion]
                st.session_state.pop("suggestion")
                st.rerun()

# --- TAB 3: DÜNGEMITTEL ---
with tab3:
    st.header("Düngemittel-Datenbank")

    def fert_form(key, fert=None):
        """Formular für Anlegen/Bearbeiten; liefert ein FertilizerProfile oder None."""
        def text(value):
            return "" if value is None else f"{value:g}"

        with st.form(key):
            name = st.text_input("Name des Düngers", value=fert.name if fert else "")
            c1, c2 = st.columns(2)
            bag = c1.text_input("Sackgröße (kg)", value=text(fert.bag_size_kg) if fert else "")
            price = c2.text_input(f"Preis pro Sack ({config.CURRENCY})", value=text(fert.price_per_bag) if fert else "")
            st.write("Gehalte in Gewichtsprozent (z.B. 14 für 14 %)")
            npk, micro = {}, {}
            cols = st.columns(6)
            for i, k in enumerate(MACROS):
                npk[k] = cols[i].text_input(k, value=text(getattr(fert.npk, k)) if fert else "", key=f"{key}_{k}")
            cols = st.columns(6)
            for i, k in enumerate(MICROS):
                micro[k] = cols[i].text_input(k, value=text(getattr(fert.micro, k)) if fert else "", key=f"{key}_{k}")
            if st.form_submit_button("Speichern"):
                try:
                    return FertilizerProfile(id=fert.id if fert else None, name=name, bag_size_kg=bag, price_per_bag=price,
                                             npk=npk, micro=micro)
                except ValueError as e:
                    st.error(f"Ungültige Eingabe: {e}")
        return None

    with st.expander("➕ Neuen Dünger hinzufügen"):
        new_fert = fert_form("fert_form")
        if new_fert is not None:
            database.save_fertilizer(db, new_fert)
            st.success(f"{new_fert.name} hinzugefügt!")
            st.rerun()

    search = st.text_input("Suchen…", key="fert_search")
    for f in database.filter_fertilizers(all_ferts, search):
        col_f1, col_f2, col_f3 = st.columns([4, 1, 1])
        bag = f"{f.bag_size_kg:g} kg" if f.bag_size_kg else "—"
        price = f"{config.CURRENCY} {f.price_per_bag:g}" if f.price_per_bag else "kein Preis"
        col_f1.write(f"**{f.name}** ({bag} · {price})")
        if col_f2.button("Löschen", key=f"del_{f.id}"):
            try:
                database.delete_fertilizer(db, f.id)
            except database.RecordNotFoundError:
                st.warning("Dünger existiert nicht mehr.")
            st.rerun()
        if col_f3.button("Bearbeiten", key=f"edit_{f.id}"):
            st.session_state[f"edit_fert_{f.id}"] = True

        if st.session_state.get(f"edit_fert_{f.id}", False):
            with st.expander(f"Bearbeite {f.name}", expanded=True):
                edited = fert_form(f"fert_edit_form_{f.id}", f)
                if edited is not None:
                    try:
                        database.save_fertilizer(db, edited)
                        st.success("Dünger aktualisiert")
                    except database.RecordNotFoundError:
                        st.error("Dünger existiert nicht mehr.")
                    st.session_state.pop(f"edit_fert_{f.id}", None)
                    st.rerun()

# --- TAB 4: REZEPTE ---
with tab4:
    st.header("Gespeicherte Rezepte")
    query = st.text_input("Suche (Charge, Haus/Zone, Bearbeiter)", key="recipe_search")
    for r in database.search_recipes(db, query):
        c1, c2, c3 = st.columns([4, 1, 1])
        mode = DOSE_MODE_LABELS[r.dose_mode] if r.topology == Topology.DIRECT else TOPOLOGY_LABELS[r.topology]
        c1.write(f"**{r.batch_id}** · {r.created_at:%d.%m.%Y %H:%M} · {r.house_zone or '—'} · {r.operator or '—'}")
        c1.caption(f"{mode} · {r.volume_l:g} L · {config.CURRENCY} {r.cost:.2f}")
        if c2.button("Verwenden", key=f"use_{r.id}"):
            load_recipe_into_mix(r)
            st.rerun()
        if c3.button("Löschen", key=f"delrecipe_{r.id}"):
            try:
                database.delete_recipe(db, r.id)
            except database.RecordNotFoundError:
                st.warning("Rezept existiert nicht mehr.")
            st.rerun()

        with st.expander(f"Arbeitsauftrag {r.batch_id}"):
            st.write(f"Volumen: **{r.volume_l:g} L**"
                     + (f" · Injektor 1:{r.injector_ratio:g}" if r.topology == Topology.STOCK_INJECTOR else ""))
            st.write(f"EC (geschätzt): **{r.ec_estimate_ms_cm:.2f} mS/cm** (Skalierung {r.ec_scale:.2f})")
            if r.ec_target:
                st.write(f"EC-Ziel: {r.ec_target:.2f} mS/cm "
                         f"(Δ {ec_delta_to_target(r.ec_target, r.ec_estimate_ms_cm):.2f})")
            if r.ec_measured:
                st.write(f"EC gemessen: {r.ec_measured:.2f} mS/cm")
            if r.notes:
                st.write(f"Notizen: {r.notes}")
            st.table([{"Dünger": i.name, f"Menge ({r.weight_unit.value})": i.amount, "verbraucht (g)": i.grams,
                       f"Kosten ({config.CURRENCY})": f"{i.cost:.2f}"} for i in r.items])
            st.table([{"Nährstoff": NutrientProfile.NUTRIENT_LABELS[k],
                       "ppm": NutrientProfile.round_ppm(k, r.ppm.get(k, 0.0))} for k in MACROS + MICROS])
