import os
import logging
from flask import Flask
from dotenv import load_dotenv

load_dotenv()

# Configure logging
logging.basicConfig(level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
                    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Create the Flask app
app = Flask(__name__)
app.json.sort_keys = False

# Handler blueprints, one per /api/<handler>
from prabaraja.assets import assets_blueprint
from prabaraja.auths import auths_blueprint
from prabaraja.cashbank import cashbank_blueprint
from prabaraja.contacts import contacts_blueprint
from prabaraja.dashboard import dashboard_blueprint
from prabaraja.expenses import expenses_blueprint
from prabaraja.products import products_blueprint
from prabaraja.purchases import purchases_blueprint
from prabaraja.sales import sales_blueprint

for blueprint in (assets_blueprint, auths_blueprint, cashbank_blueprint, contacts_blueprint,
                  dashboard_blueprint, expenses_blueprint, products_blueprint,
                  purchases_blueprint, sales_blueprint):
    app.register_blueprint(blueprint)

logger.debug(f'Registered handlers: {sorted(app.blueprints)}')

# Import app-level routes and error handlers after the app exists to avoid circular imports
from app import *

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get('PORT', 5000)), debug=True)
