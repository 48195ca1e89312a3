# /app/config/strings.py

# This file contains the user-facing strings the engine produces itself,
# as opposed to step texts which belong to the flow definition.

INVALID_CHOICE_PROMPT = "Veuillez choisir une option valide :"

UNKNOWN_STEP_MESSAGE = "Erreur: étape introuvable. Tapez 'menu' pour recommencer."
