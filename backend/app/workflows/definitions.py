# /app/workflows/definitions.py

"""
Flow definitions as pure data (no logic).

Each flow specifies:
- name: The flow name reported by the service
- start_step_id: The step every new or reset session starts at
- intents: Reserved top-level intent tags; choosing a button option with one
  of these ids sets the session intent
- steps: Ordered list of step definitions

Each step defines:
- id / kind / text: kind is one of message, input, button, end
- options: Reply buttons (button steps only)
- store_key: Name under which the user's reply is recorded
- default_intent: Intent recorded on the first answer if none is set yet
- next: Next step id, or option id -> step id mapping for button steps
"""

from typing import Dict, Any

# Type definition for a flow, validated by app.workflows.validator.load_flow
FlowData = Dict[str, Any]

SMARTFIX_FLOW: FlowData = {
    "name": "smartfix_phone_shop",
    "start_step_id": "welcome",
    "intents": ["buy", "sell", "repair"],
    "steps": [
        {
            "id": "welcome",
            "kind": "button",
            "text": "👋 Bonjour ! Bienvenue chez SmartFix Mobile 📱\nComment pouvons-nous vous aider ?",
            "options": [
                {"id": "buy", "title": "🛒 Acheter"},
                {"id": "sell", "title": "💰 Vendre"},
                {"id": "repair", "title": "🔧 Réparer"}
            ],
            "next": {
                "buy": "ask_brand_buy",
                "sell": "ask_brand_sell",
                "repair": "ask_brand_repair"
            }
        },

        # --- Buy ---
        {
            "id": "ask_brand_buy",
            "kind": "input",
            "text": "Super 🛍️ Quelle marque cherchez-vous ?\n(Ex: iPhone, Samsung, Xiaomi...)",
            "store_key": "brand",
            "default_intent": "buy",
            "next": "ask_budget"
        },
        {
            "id": "ask_budget",
            "kind": "input",
            "text": "Quel est votre budget approximatif ?\n(Ex: 3000 MAD, 5000 MAD...)",
            "store_key": "budget",
            "next": "confirm_buy"
        },
        {
            "id": "confirm_buy",
            "kind": "message",
            "text": "Merci ! ✅ Nous allons chercher des options pour un {{brand}} à environ {{budget}} 💸\n\nUn conseiller vous contactera sous peu !",
            "next": "end"
        },

        # --- Sell ---
        {
            "id": "ask_brand_sell",
            "kind": "input",
            "text": "Quelle est la marque et le modèle de votre téléphone ?\n(Ex: iPhone 13, Samsung Galaxy S21...)",
            "store_key": "brand",
            "default_intent": "sell",
            "next": "ask_condition"
        },
        {
            "id": "ask_condition",
            "kind": "button",
            "text": "Quel est son état ?",
            "options": [
                {"id": "neuf", "title": "✨ Neuf"},
                {"id": "bon", "title": "👍 Bon état"},
                {"id": "casse", "title": "🔨 Cassé"}
            ],
            "store_key": "condition",
            "next": {
                "neuf": "confirm_sell",
                "bon": "confirm_sell",
                "casse": "confirm_sell"
            }
        },
        {
            "id": "confirm_sell",
            "kind": "message",
            "text": "Merci 🙏 Nous vous contacterons pour estimer votre {{brand}} en état {{condition}}.\n\nNous vous ferons une offre rapidement !",
            "next": "end"
        },

        # --- Repair ---
        {
            "id": "ask_brand_repair",
            "kind": "input",
            "text": "Quel est le modèle de votre téléphone à réparer ?\n(Ex: iPhone 12, Huawei P30...)",
            "store_key": "brand",
            "default_intent": "repair",
            "next": "ask_issue"
        },
        {
            "id": "ask_issue",
            "kind": "button",
            "text": "Quel est le problème rencontré ?",
            "options": [
                {"id": "ecran", "title": "📱 Écran cassé"},
                {"id": "batterie", "title": "🔋 Batterie"},
                {"id": "autre", "title": "🔧 Autre"}
            ],
            "store_key": "issue",
            "next": {
                "ecran": "confirm_repair",
                "batterie": "confirm_repair",
                "autre": "ask_issue_detail"
            }
        },
        {
            "id": "ask_issue_detail",
            "kind": "input",
            "text": "Décrivez le problème en détail :",
            "store_key": "issue_detail",
            "next": "confirm_repair"
        },
        {
            "id": "confirm_repair",
            "kind": "message",
            "text": "Merci 🔧 Nous vous enverrons un devis pour la réparation de votre {{brand}}.\n\nProblème : {{issue}} {{issue_detail}}\n\nRéponse dans les 24h !",
            "next": "end"
        },

        {
            "id": "end",
            "kind": "end",
            "text": "Merci pour votre visite 👋\nNous restons à votre disposition sur WhatsApp !\n\n💬 Tapez 'menu' pour recommencer"
        }
    ]
}

FLOWS: Dict[str, FlowData] = {
    SMARTFIX_FLOW["name"]: SMARTFIX_FLOW,
}
