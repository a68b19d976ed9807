import json
import logging
import os

from pydantic import ValidationError
from tinydb import Query, TinyDB

import config
from models import FertilizerProfile, Recipe

logger = logging.getLogger(__name__)

FERTILIZERS = 'fertilizers'
RECIPES = 'recipes'


class RecordNotFoundError(LookupError):
    pass


def open_db(path=None, **kwargs):
    """Öffnet die TinyDB-Datei (Standard: config.DB_PATH), Ordner wird bei Bedarf angelegt."""
    if 'storage' in kwargs:
        return TinyDB(**kwargs)
    path = path or config.DB_PATH
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    return TinyDB(path, **kwargs)


def _doc_id(record_id):
    try:
        return int(record_id)
    except (TypeError, ValueError):
        raise RecordNotFoundError(record_id) from None


def _fertilizer(doc):
    return FertilizerProfile(id=doc.doc_id, **doc)


def _recipe(doc):
    return Recipe(id=doc.doc_id, **doc)


# --- DÜNGEMITTEL ---
def get_all_fertilizers(db):
    ferts = [_fertilizer(doc) for doc in db.table(FERTILIZERS).all()]
    return sorted(ferts, key=lambda f: f.name.lower())


def get_fertilizer(db, fert_id):
    doc = db.table(FERTILIZERS).get(doc_id=_doc_id(fert_id))
    if doc is None:
        raise RecordNotFoundError(fert_id)
    return _fertilizer(doc)


def save_fertilizer(db, fert):
    """Legt den Dünger an oder aktualisiert ihn (wenn fert.id gesetzt ist). Gibt die id zurück."""
    table = db.table(FERTILIZERS)
    if fert.id is None:
        fert_id = table.insert(fert.to_record())
        logger.info("Dünger angelegt: %s (id=%s)", fert.name, fert_id)
        return fert_id
    doc_id = _doc_id(fert.id)
    if not table.contains(doc_id=doc_id):
        raise RecordNotFoundError(fert.id)
    table.update(fert.to_record(), doc_ids=[doc_id])
    logger.info("Dünger aktualisiert: %s (id=%s)", fert.name, doc_id)
    return doc_id


def delete_fertilizer(db, fert_id):
    table = db.table(FERTILIZERS)
    doc_id = _doc_id(fert_id)
    if not table.contains(doc_id=doc_id):
        raise RecordNotFoundError(fert_id)
    table.remove(doc_ids=[doc_id])
    logger.info("Dünger gelöscht: id=%s", doc_id)


def filter_fertilizers(ferts, text):
    """Namenssuche für die Düngerauswahl (Groß-/Kleinschreibung egal)."""
    text = (text or "").strip().lower()
    if not text:
        return list(ferts)
    return [f for f in ferts if text in f.name.lower()]


def import_fertilizers(db, path):
    """Übernimmt Dünger aus einer JSON-Datei (ohne Duplikate nach Name).

    Die Datei enthält entweder eine Liste von Datensätzen oder ein Objekt
    mit dem Schlüssel "fertilizers" (Liste oder {id: Datensatz}).
    Gibt die Anzahl neu angelegter Dünger zurück.
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            ext = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Externe Düngerdatei nicht geladen (%s): %s", path, e)
        return 0

    records = ext.get(FERTILIZERS, []) if isinstance(ext, dict) else ext
    if isinstance(records, dict):
        records = list(records.values())

    table = db.table(FERTILIZERS)
    known = {f.name.lower() for f in get_all_fertilizers(db)}
    added = 0
    for record in records or []:
        if not isinstance(record, dict) or not str(record.get('name') or '').strip():
            continue
        try:
            fert = FertilizerProfile(**{k: v for k, v in record.items() if k != 'id'})
        except ValidationError as e:
            logger.warning("Ungültiger Dünger in %s übersprungen (%s): %s", path, record.get('name'), e)
            continue
        if fert.name.lower() in known:
            continue
        table.insert(fert.to_record())
        known.add(fert.name.lower())
        added += 1
    logger.info("%d Dünger aus %s importiert", added, path)
    return added


# --- REZEPTE ---
def save_recipe(db, recipe):
    recipe_id = db.table(RECIPES).insert(recipe.to_record())
    logger.info("Rezept gespeichert: %s (id=%s)", recipe.batch_id, recipe_id)
    return recipe_id


def get_all_recipes(db):
    """Alle Rezepte, neueste zuerst."""
    recipes = [_recipe(doc) for doc in db.table(RECIPES).all()]
    return sorted(recipes, key=lambda r: r.created_at, reverse=True)


def get_recipe(db, recipe_id):
    doc = db.table(RECIPES).get(doc_id=_doc_id(recipe_id))
    if doc is None:
        raise RecordNotFoundError(recipe_id)
    return _recipe(doc)


def search_recipes(db, text):
    """Suche nach Chargen-ID, Haus/Zone oder Bearbeiter."""
    text = (text or "").strip().lower()
    recipes = get_all_recipes(db)
    if not text:
        return recipes
    return [
        r for r in recipes
        if text in r.batch_id.lower() or text in r.house_zone.lower() or text in r.operator.lower()
    ]


def find_recipes_by_batch(db, batch_id):
    docs = db.table(RECIPES).search(Query().batch_id == batch_id)
    return [_recipe(doc) for doc in docs]


def delete_recipe(db, recipe_id):
    table = db.table(RECIPES)
    doc_id = _doc_id(recipe_id)
    if not table.contains(doc_id=doc_id):
        raise RecordNotFoundError(recipe_id)
    table.remove(doc_ids=[doc_id])
    logger.info("Rezept gelöscht: id=%s", doc_id)
