from models import CategoryType


# Top-level categories with their sub-categories, seeded on request for a new
# profile. The flag marks expenses that fluctuate from month to month.
DEFAULT_CATEGORIES: list[dict] = [
    {
        "name": "Aides & Subventions",
        "type": CategoryType.income,
        "children": ["CAF", "CPF"],
    },
    {
        "name": "Prêts & Finance",
        "type": CategoryType.income,
        "children": ["Apport personnels", "Intérêts bancaires"],
    },
    {
        "name": "Revenu",
        "type": CategoryType.income,
        "children": ["Gérant Société", "Salaire"],
    },
    {
        "name": "Autres recettes",
        "type": CategoryType.income,
        "children": ["Autres produits", "Remboursements"],
    },
    {
        "name": "Abonnements, Forfaits",
        "type": CategoryType.expense,
        "is_variable": False,
        "children": ["Autres abonnements", "Internet mobile", "Streaming"],
    },
    {
        "name": "Logement",
        "type": CategoryType.expense,
        "is_variable": False,
        "children": ["Loyer", "Taxe d'habitation/Foncière"],
    },
    {
        "name": "Assurances",
        "type": CategoryType.expense,
        "is_variable": False,
        "children": [
            "Assurance multirisque",
            "Assurance pro",
            "Autres assurances",
        ],
    },
    {
        "name": "Frais bancaires et financiers",
        "type": CategoryType.expense,
        "is_variable": False,
        "children": ["Agios", "Commissions", "Frais de dossier"],
    },
    {
        "name": "Impôts et taxes",
        "type": CategoryType.expense,
        "is_variable": False,
        "children": ["TVA", "Impôt sur les sociétés", "Taxes", "Cotisations"],
    },
    {
        "name": "Loisirs & Vacances",
        "type": CategoryType.expense,
        "is_variable": True,
        "children": ["Vacances", "Sorties", "Loisirs"],
    },
    {
        "name": "Fournitures et consommables",
        "type": CategoryType.expense,
        "is_variable": True,
        "children": ["Fournitures bureau", "Consommables", "Petit équipement"],
    },
    {
        "name": "Déplacements et missions",
        "type": CategoryType.expense,
        "is_variable": True,
        "children": ["Transport", "Hébergement", "Frais de mission"],
    },
    {
        "name": "Autres dépenses",
        "type": CategoryType.expense,
        "is_variable": True,
        "children": ["Divers", "Autres charges"],
    },
]


def default_categories_flat() -> list[dict]:
    """Parents first, each followed by its children carrying ``parent_name``."""
    flat: list[dict] = []
    for item in DEFAULT_CATEGORIES:
        is_variable = item.get("is_variable", False)
        flat.append(
            {
                "name": item["name"],
                "type": item["type"],
                "parent_name": None,
                "is_variable": is_variable,
            }
        )
        for child in item.get("children", []):
            flat.append(
                {
                    "name": child,
                    "type": item["type"],
                    "parent_name": item["name"],
                    "is_variable": is_variable,
                }
            )
    return flat
