import logging
import os

from flask import Flask, jsonify, request
from flask_cors import CORS
from langchain_core.messages import HumanMessage

from agent_graph import app_graph
from graph_models import WorkflowGraph
from repair_errors import AllocationExhausted, DuplicateIdentifierError, InvalidWorkflowInput
from repair_rules import load_rules
from workflow_repair import repair_workflow
from workflow_validation import normalize_workflow_graph, validate_workflow, validate_workflow_graph

logger = logging.getLogger(__name__)


def create_app(rules=None):
    app = Flask(__name__)
    CORS(app) # Enable CORS for all routes
    rules = rules or load_rules()

    @app.route('/health')
    def health():
        return jsonify({'status': 'healthy'})

    @app.route('/api/repair_workflow', methods=['POST'])
    def repair():
        data = request.get_json(silent=True)
        try:
            repaired = repair_workflow(data, rules=rules, with_notes=True)
        except InvalidWorkflowInput as e:
            return jsonify({'error': str(e)}), 400
        except DuplicateIdentifierError as e:
            # The editor keeps its previous graph
            return jsonify({'error': str(e), 'node_ids': e.node_ids, 'edge_ids': e.edge_ids}), 422
        except AllocationExhausted as e:
            return jsonify({'error': str(e)}), 422
        return jsonify(repaired)

    @app.route('/api/validate_workflow', methods=['POST'])
    def validate():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({'error': 'Invalid workflow data'}), 400

        graph = WorkflowGraph.from_raw(data)
        normalized = normalize_workflow_graph(graph.nodes, graph.edges, rules)
        issues = validate_workflow(normalized.nodes, normalized.edges, rules)
        topology = validate_workflow_graph(normalized.nodes, normalized.edges, rules)

        return jsonify({
            'nodes': [n.model_dump(mode='json') for n in normalized.nodes],
            'edges': [e.model_dump(mode='json') for e in normalized.edges],
            'warnings': normalized.warnings,
            'issues': [i.model_dump() for i in issues],
            'topology': topology.model_dump(),
        })

    @app.route('/api/generate_workflow', methods=['POST'])
    def generate_workflow():
        data = request.get_json(silent=True)
        prompt = data.get('prompt') if isinstance(data, dict) else None
        if not prompt:
            return jsonify({'error': 'Prompt is required'}), 400

        initial_state = {
            "messages": [HumanMessage(content=prompt)],
            "results": {}
        }

        # Invoke the graph
        final_state = app_graph.invoke(initial_state)
        results = final_state.get('results', {})
        messages = [m.content for m in final_state['messages']]

        return jsonify({
            'status': 'error' if 'error' in results else 'success',
            'results': results,
            'messages': messages
        })

    return app


if __name__ == '__main__':
    logging.basicConfig(
        level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    app = create_app()
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)), debug=True)
